"""Dependency resolution: graph building, version arbitration and scope propagation.

Typical use goes through ResolutionDriver, which runs the stages in order and
returns a ResolvedSet.
"""

from .config import ResolverConfig
from .cancellation import CancellationToken
from .driver import ResolutionDriver, ResolutionState
from .report import ResolvedSet

__all__ = [
    "ResolverConfig",
    "CancellationToken",
    "ResolutionDriver",
    "ResolutionState",
    "ResolvedSet",
]

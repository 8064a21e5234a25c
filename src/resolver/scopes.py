"""Scope combination rules.

The effective scope of a transitive module is the parent's effective scope
combined with the scope the child was declared with. The reduction never
widens: moving away from the root a scope can only stay the same or become
more restrictive, or drop the child entirely.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from constants import Scopes

COMPILE = Scopes.COMPILE.value
RUNTIME = Scopes.RUNTIME.value
PROVIDED = Scopes.PROVIDED.value
TEST = Scopes.TEST.value
SYSTEM = Scopes.SYSTEM.value
IMPORT = Scopes.IMPORT.value

# (parent effective scope, child declared scope) -> effective child scope.
# Missing pairs mean the child is not propagated.
SCOPE_TABLE: Dict[Tuple[str, str], str] = {
    (COMPILE, COMPILE): COMPILE,
    (COMPILE, RUNTIME): RUNTIME,
    (RUNTIME, COMPILE): RUNTIME,
    (RUNTIME, RUNTIME): RUNTIME,
    (PROVIDED, COMPILE): PROVIDED,
    (PROVIDED, RUNTIME): PROVIDED,
    (TEST, COMPILE): TEST,
    (TEST, RUNTIME): TEST,
}

# Larger = more restrictive. Used to check the widen-never property.
_RESTRICTIVENESS = {COMPILE: 0, RUNTIME: 1, PROVIDED: 2, SYSTEM: 2, TEST: 3}

VALID_DEPENDENCY_SCOPES = frozenset(_RESTRICTIVENESS)


def declared_scope(explicit: Optional[str], managed: Optional[str] = None) -> str:
    """Scope a dependency is declared with: explicit, else managed, else compile."""
    return explicit or managed or COMPILE


def is_transitive(child_scope: str) -> bool:
    """Whether a dependency declared with this scope is seen by consumers."""
    return child_scope in (COMPILE, RUNTIME)


def combine(parent_scope: str, child_scope: str) -> Optional[str]:
    """Effective scope of a child reached through a parent, or None if dropped."""
    return SCOPE_TABLE.get((parent_scope, child_scope))


def propagate(chain: Iterable[str]) -> Optional[str]:
    """Fold a root-first chain of declared scopes into an effective scope.

    The first element is the scope of the direct dependency, which is taken
    as-is; every later element is combined through the table.
    """
    effective: Optional[str] = None
    for scope in chain:
        if effective is None:
            effective = scope
            continue
        effective = combine(effective, scope)
        if effective is None:
            return None
    return effective


def narrower_or_equal(a: str, b: str) -> bool:
    """True when ``a`` is at least as restrictive as ``b``."""
    return _RESTRICTIVENESS.get(a, 0) >= _RESTRICTIVENESS.get(b, 0)

"""Resolution driver: one pass from a root manifest to a resolved set.

State machine::

    Init -> Building -> Arbitrating -> ScopePropagating -> Done
                 \\-> Failed

Every run gets its own ManifestLoader, so nothing loaded in one run is
visible to the next. A failed run never returns partial results; the error
raised carries the partially built graph for diagnostics only.
"""
from __future__ import annotations

import logging
import os
import time
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from common.logging_utils import extra_context, is_debug_enabled, Timer
from errors import Cancelled, ManifestNotFound, ResolutionError
from manifest import parser
from manifest.loader import ManifestLoader
from manifest.models import Manifest
from manifest.sources import DeadlineSource, ManifestSource
from resolver.arbiter import VersionArbiter
from resolver.builder import GraphBuilder
from resolver.cancellation import CancellationToken
from resolver.config import ResolverConfig
from resolver.graph import DependencyGraph
from resolver.propagation import ScopePropagator
from resolver.report import ResolvedSet

logger = logging.getLogger(__name__)


class ResolutionState(Enum):
    """States of a resolution run."""
    INIT = "init"
    BUILDING = "building"
    ARBITRATING = "arbitrating"
    SCOPE_PROPAGATING = "scope_propagating"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    ResolutionState.INIT: {ResolutionState.BUILDING},
    ResolutionState.BUILDING: {ResolutionState.ARBITRATING, ResolutionState.FAILED},
    ResolutionState.ARBITRATING: {ResolutionState.SCOPE_PROPAGATING, ResolutionState.FAILED},
    ResolutionState.SCOPE_PROPAGATING: {ResolutionState.DONE, ResolutionState.FAILED},
    ResolutionState.DONE: set(),
    ResolutionState.FAILED: set(),
}


class ResolutionDriver:
    """Orchestrates graph building, arbitration and scope propagation.

    Args:
        source: Manifest source collaborator.
        config: Resolver tunables.
        cancel_token: Optional token; ``cancel()`` sets it from any thread.
    """

    def __init__(
        self,
        source: ManifestSource,
        config: Optional[ResolverConfig] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.source = source
        self.config = (config or ResolverConfig()).validate()
        self.cancel_token = cancel_token or CancellationToken()
        self.state = ResolutionState.INIT
        self.history: List[ResolutionState] = [self.state]
        self.graph: Optional[DependencyGraph] = None

    def cancel(self, reason: str = "Resolution cancelled") -> None:
        self.cancel_token.cancel(reason)

    def _transition(self, new_state: ResolutionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal resolution state change {self.state.value} -> {new_state.value}")
        if is_debug_enabled(logger):
            logger.debug("State change", extra=extra_context(
                event="state", component="driver", action="transition",
                outcome=new_state.value, previous=self.state.value
            ))
        self.state = new_state
        self.history.append(new_state)

    def _reset(self) -> None:
        self.state = ResolutionState.INIT
        self.history = [self.state]
        self.graph = None

    def resolve(self, root: Union[Manifest, bytes], source_name: str = "<root>") -> ResolvedSet:
        """Resolve a root manifest (parsed, or raw bytes) into a ResolvedSet.

        Raises:
            ResolutionError: the specific fatal error, with ``partial_graph``
                attached. The driver ends in the FAILED state.
        """
        self._reset()
        self._transition(ResolutionState.BUILDING)
        source, closer = self._run_source()
        loader = ManifestLoader(source, self.config.bom_conflict_policy)
        builder = GraphBuilder(loader, self.config.max_workers, self.cancel_token)
        try:
            with Timer() as t:
                if isinstance(root, (bytes, bytearray)):
                    root = parser.parse(bytes(root), source_name)
                effective_root = loader.effective(root)
                graph = builder.build(effective_root)
                self.graph = graph
                self.cancel_token.raise_if_cancelled()

                self._transition(ResolutionState.ARBITRATING)
                arbitration = VersionArbiter(self.config.exclusion_scope).run(graph)
                self.cancel_token.raise_if_cancelled()

                self._transition(ResolutionState.SCOPE_PROPAGATING)
                propagator = ScopePropagator()
                nodes = propagator.propagate(arbitration.nodes)

                resolved = ResolvedSet.from_nodes(
                    graph.root,
                    nodes,
                    exclusions=tuple(arbitration.exclusions),
                    scope_drops=tuple(propagator.dropped),
                    pruned=tuple(graph.pruned),
                )
            self._transition(ResolutionState.DONE)
            logger.info(
                "Resolved %d modules for %s in %.0f ms", len(resolved), graph.root, t.duration_ms()
            )
            return resolved
        except ResolutionError as exc:
            self._fail(exc, builder)
            raise
        except Exception:
            self._fail(None, builder)
            raise
        finally:
            if closer is not None:
                closer()

    def resolve_path(self, path: str) -> ResolvedSet:
        """Read a root manifest file and resolve it.

        Raises:
            ManifestNotFound: if the file cannot be read.
        """
        try:
            with open(path, "rb") as fh:
                data = fh.read()
        except OSError as exc:
            raise ManifestNotFound(f"Cannot read root manifest: {exc}", os.path.basename(path)) from exc
        return self.resolve(data, source_name=path)

    def _fail(self, exc: Optional[ResolutionError], builder: GraphBuilder) -> None:
        self.graph = builder.graph
        if exc is not None:
            exc.partial_graph = builder.graph
        if self.state not in (ResolutionState.DONE, ResolutionState.FAILED):
            self._transition(ResolutionState.FAILED)
        if isinstance(exc, Cancelled):
            logger.warning("Resolution cancelled: %s", exc)
        elif exc is not None:
            logger.error("Resolution failed (%s): %s", exc.kind, exc)

    def _run_source(self) -> Tuple[ManifestSource, Optional[Callable[[], None]]]:
        if self.config.deadline_seconds is None:
            return self.source, None
        wrapped = DeadlineSource(self.source, time.monotonic() + self.config.deadline_seconds)
        return wrapped, wrapped.close

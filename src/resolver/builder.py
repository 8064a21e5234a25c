"""Breadth-first construction of the dependency graph.

The builder makes no arbitration decisions. It expands the root's declared
dependencies one depth level at a time, applies exclusions before anything
is fetched and records every edge it sees. Cycles are caught along each path,
and also when an edge leads back into a module already expanded elsewhere.
Manifests needed for the next level are loaded concurrently; results are
consumed in breadth-first order so the first error reported is stable.
"""
from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer
from errors import CyclicDependencyError, ManifestParseError, ResolutionError, UnresolvableVersion
from manifest.loader import ManifestLoader, is_unresolved
from manifest.models import Coordinate, DeclaredDependency, ManagedVersions, Manifest, ModuleKey
from resolver import exclusions, scopes
from resolver.cancellation import CancellationToken
from resolver.graph import (
    PRUNED_EXCLUDED,
    PRUNED_OPTIONAL,
    VERSION_EXPLICIT,
    VERSION_INHERITED,
    VERSION_MANAGED,
    DependencyEdge,
    DependencyGraph,
    GraphNode,
    PrunedDeclaration,
)

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SEC = 0.05


@dataclass(frozen=True)
class _WorkItem:
    """A node scheduled for expansion, with the state of the path to it."""
    node: Coordinate
    depth: int
    exclusions: exclusions.ExclusionSet
    path: Tuple[Coordinate, ...]
    order: Tuple[int, ...]

    @property
    def path_keys(self) -> Set[ModuleKey]:
        return {c.key for c in self.path}


class GraphBuilder:
    """Builds a DependencyGraph for an effective root manifest.

    Args:
        loader: Loader scoped to the current resolution run.
        max_workers: Threads used to fetch manifests of one level.
        cancel_token: Checked between fetches; cancels the build when set.
    """

    def __init__(
        self,
        loader: ManifestLoader,
        max_workers: int = Constants.MAX_WORKERS,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.loader = loader
        self.max_workers = max(1, int(max_workers))
        self.cancel_token = cancel_token or CancellationToken()
        self.graph: Optional[DependencyGraph] = None
        self._root_managed = ManagedVersions()

    def build(self, root: Manifest) -> DependencyGraph:
        """Expand ``root`` (an effective manifest) into a full graph.

        Raises:
            ManifestNotFound, ManifestParseError, UnresolvableVersion,
            CyclicDependencyError, Cancelled: the first fatal error met in
            breadth-first order. ``self.graph`` keeps what was built so far.
        """
        self.graph = DependencyGraph(root.coordinate)
        self._root_managed = root.managed
        expanded: Set[ModuleKey] = {root.key}

        root_item = _WorkItem(root.coordinate, 0, exclusions.EMPTY, (root.coordinate,), ())
        level: List[Tuple[_WorkItem, Manifest]] = [(root_item, root)]

        logger.info("Building dependency graph for %s", root.coordinate)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="manifest-load"
        )
        finished = False
        with Timer() as t:
            try:
                while level:
                    self.cancel_token.raise_if_cancelled()
                    next_items = self._expand_level(level, expanded)
                    level = self._load_level(executor, next_items)
                finished = True
            finally:
                # in-flight fetches are abandoned on failure
                executor.shutdown(wait=finished, cancel_futures=True)

        logger.info(
            "Graph built: %d nodes, %d edges, %d pruned declarations",
            len(self.graph.nodes), len(self.graph.edges), len(self.graph.pruned),
        )
        if is_debug_enabled(logger):
            logger.debug("Graph build finished", extra=extra_context(
                event="function_exit", component="builder", action="build",
                outcome="success", duration_ms=t.duration_ms(), **self.graph.summary()
            ))
        return self.graph

    # ------------------------------------------------------------------
    # expansion
    # ------------------------------------------------------------------

    def _expand_level(
        self, level: List[Tuple[_WorkItem, Manifest]], expanded: Set[ModuleKey]
    ) -> List[_WorkItem]:
        """Create edges for every declaration of this level's manifests."""
        assert self.graph is not None
        next_items: List[_WorkItem] = []
        for item, manifest in level:
            node = self.graph.nodes.get(item.node)
            if node is None:
                node = GraphNode(item.node, item.depth)
                self.graph.nodes[item.node] = node
            node.expanded = True
            for index, dep in enumerate(manifest.dependencies):
                child_item = self._visit(item, manifest, index, dep, expanded)
                if child_item is not None:
                    next_items.append(child_item)
        return next_items

    def _visit(  # pylint: disable=too-many-arguments, too-many-positional-arguments
        self,
        item: _WorkItem,
        manifest: Manifest,
        index: int,
        dep: DeclaredDependency,
        expanded: Set[ModuleKey],
    ) -> Optional[_WorkItem]:
        assert self.graph is not None
        depth = item.depth + 1
        managed_entry = self._root_managed.get(dep.key)
        scope = scopes.declared_scope(dep.scope, managed_entry.scope if managed_entry else None)

        if dep.is_bom_import or scope == scopes.IMPORT:
            logger.warning("Ignoring import-scoped entry %s in dependencies of %s", dep, item.node)
            return None
        if scope not in scopes.VALID_DEPENDENCY_SCOPES:
            raise ManifestParseError(
                f"Dependency scope '{scope}' could not be resolved",
                dep.coordinate, item.path,
                source_name=manifest.source_name, field=f"dependencies[{index}].scope",
            )
        if depth > 1 and (dep.optional or not scopes.is_transitive(scope)):
            reason = PRUNED_OPTIONAL if dep.optional else f"scope:{scope}"
            self._prune(item, dep, depth, reason)
            return None

        rule = exclusions.matching_rule(item.exclusions, dep.key)
        if rule is not None:
            self._prune(item, dep, depth, PRUNED_EXCLUDED, rule)
            return None

        if dep.key in item.path_keys:
            cycle = item.path + (Coordinate(dep.group, dep.artifact, dep.version),)
            raise CyclicDependencyError(
                f"{dep.group}:{dep.artifact} is reachable from itself", dep.coordinate, cycle
            )

        version, source, origin = self._pick_version(item, manifest, dep)
        child = Coordinate(dep.group, dep.artifact, version)
        if dep.key in expanded:
            # already scheduled from another path; look for a recorded way back
            back = self.graph.chain_between(dep.key, item.node.key)
            if back is not None:
                raise CyclicDependencyError(
                    f"{dep.group}:{dep.artifact} is reachable from itself", child, item.path + back
                )
        edge = DependencyEdge(
            parent=item.node,
            child=child,
            declared_scope=scope,
            depth=depth,
            exclusions=exclusions.inherit(item.exclusions, dep.exclusions),
            version_source=source,
            order=item.order + (index,),
            path=item.path,
            managed_origin=origin,
        )
        self.graph.add_edge(edge)

        if dep.key in expanded:
            # reached before at a shallower or equal depth
            return None
        expanded.add(dep.key)
        return _WorkItem(child, depth, edge.exclusions, item.path + (child,), edge.order)

    def _pick_version(
        self, item: _WorkItem, manifest: Manifest, dep: DeclaredDependency
    ) -> Tuple[str, str, Optional[str]]:
        """Version precedence: root managed table, explicit, declaring manifest's table."""
        entry = self._root_managed.get(dep.key)
        if entry is not None and not is_unresolved(entry.version):
            return entry.version, VERSION_MANAGED, entry.origin
        if not is_unresolved(dep.version):
            return str(dep.version), VERSION_EXPLICIT, None
        if item.depth > 0:
            inherited = manifest.managed.get(dep.key)
            if inherited is not None and not is_unresolved(inherited.version):
                return inherited.version, VERSION_INHERITED, f"{inherited.origin} of {manifest.coordinate}"
        raise UnresolvableVersion(
            f"No version for {dep.group}:{dep.artifact}: not managed and not declared"
            + (f" (got '{dep.version}')" if dep.version else ""),
            Coordinate(dep.group, dep.artifact),
            item.path,
        )

    def _prune(self, item: _WorkItem, dep: DeclaredDependency, depth: int, reason: str, rule=None) -> None:
        assert self.graph is not None
        self.graph.pruned.append(PrunedDeclaration(item.node, dep, depth, reason, item.path, rule))
        if is_debug_enabled(logger):
            logger.debug("Declaration pruned", extra=extra_context(
                event="prune", component="builder", action="visit",
                target=f"{dep.group}:{dep.artifact}", outcome=reason,
                rule=None if rule is None else str(rule), parent=str(item.node)
            ))

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------

    def _load_level(
        self, executor: concurrent.futures.Executor, items: List[_WorkItem]
    ) -> List[Tuple[_WorkItem, Manifest]]:
        """Load manifests for the next level; results come back in BFS order."""
        futures: Dict[Coordinate, concurrent.futures.Future] = {}
        for item in items:
            if item.node not in futures:
                futures[item.node] = executor.submit(self.loader.load, item.node)

        loaded: List[Tuple[_WorkItem, Manifest]] = []
        for item in items:
            manifest = self._await(futures[item.node], item, futures)
            loaded.append((item, manifest))
        return loaded

    def _await(
        self,
        future: concurrent.futures.Future,
        item: _WorkItem,
        pending: Dict[Coordinate, concurrent.futures.Future],
    ) -> Manifest:
        while True:
            if self.cancel_token.cancelled:
                for other in pending.values():
                    other.cancel()
                self.cancel_token.raise_if_cancelled(item.path)
            try:
                return future.result(timeout=_POLL_INTERVAL_SEC)
            except concurrent.futures.TimeoutError:
                continue
            except ResolutionError as exc:
                raise exc.with_path(item.path)


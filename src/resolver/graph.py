"""Dependency graph produced by the builder and consumed by arbitration.

The graph is append-only: nodes and edges are created while it is built and
never changed afterwards. Arbitration selects among them; it does not edit
them.
"""
from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from manifest.models import Coordinate, DeclaredDependency, ExclusionRule, ModuleKey
from resolver.exclusions import ExclusionSet

# Where an edge's requested version came from.
VERSION_MANAGED = "managed"
VERSION_EXPLICIT = "explicit"
VERSION_INHERITED = "inherited"

# Why a declaration produced no edge.
PRUNED_EXCLUDED = "excluded"
PRUNED_OPTIONAL = "optional"


@dataclass(frozen=True)
class DependencyEdge:  # pylint: disable=too-many-instance-attributes
    """One declared dependency reached through one path.

    ``parent`` is the exact graph node that declared it (the root coordinate
    for direct dependencies). ``path`` runs from the root to ``parent``.
    ``order`` holds the declaration index at every hop, so comparing two
    orders compares their position in the root's declaration order first.
    """
    parent: Coordinate
    child: Coordinate
    declared_scope: str
    depth: int
    exclusions: ExclusionSet
    version_source: str
    order: Tuple[int, ...]
    path: Tuple[Coordinate, ...]
    managed_origin: Optional[str] = None

    @property
    def child_key(self) -> ModuleKey:
        return self.child.key

    @property
    def requested_version(self) -> Optional[str]:
        return self.child.version

    @property
    def managed(self) -> bool:
        return self.version_source == VERSION_MANAGED

    @property
    def full_path(self) -> Tuple[Coordinate, ...]:
        return self.path + (self.child,)

    def to_dict(self) -> dict:
        return {
            "parent": str(self.parent),
            "requested_version": self.requested_version,
            "scope": self.declared_scope,
            "depth": self.depth,
            "version_source": self.version_source,
            "managed_origin": self.managed_origin,
            "path": [str(c) for c in self.full_path],
            "exclusions": sorted(str(r) for r in self.exclusions),
        }


@dataclass
class GraphNode:
    """An exact (group, artifact, version) seen during expansion."""
    coordinate: Coordinate
    depth: int
    expanded: bool = False


@dataclass(frozen=True)
class PrunedDeclaration:
    """A declaration that produced no edge, kept for diagnostics."""
    parent: Coordinate
    dependency: DeclaredDependency
    depth: int
    reason: str
    path: Tuple[Coordinate, ...]
    rule: Optional[ExclusionRule] = None

    def to_dict(self) -> dict:
        data = {
            "module": f"{self.dependency.group}:{self.dependency.artifact}",
            "parent": str(self.parent),
            "depth": self.depth,
            "reason": self.reason,
            "path": [str(c) for c in self.path],
        }
        if self.rule is not None:
            data["rule"] = str(self.rule)
        return data


@dataclass
class DependencyGraph:
    """Arena of nodes keyed by exact coordinate plus the edges between them."""
    root: Coordinate
    nodes: Dict[Coordinate, GraphNode] = field(default_factory=dict)
    edges: List[DependencyEdge] = field(default_factory=list)
    pruned: List[PrunedDeclaration] = field(default_factory=list)
    _outgoing: Dict[Coordinate, List[DependencyEdge]] = field(default_factory=lambda: defaultdict(list))
    _incoming: Dict[ModuleKey, List[DependencyEdge]] = field(default_factory=lambda: defaultdict(list))
    _by_parent_key: Dict[ModuleKey, List[DependencyEdge]] = field(default_factory=lambda: defaultdict(list))

    def add_edge(self, edge: DependencyEdge) -> GraphNode:
        """Record an edge and return the (possibly new) node it points to."""
        self.edges.append(edge)
        self._outgoing[edge.parent].append(edge)
        self._incoming[edge.child_key].append(edge)
        self._by_parent_key[edge.parent.key].append(edge)
        node = self.nodes.get(edge.child)
        if node is None:
            node = GraphNode(edge.child, edge.depth)
            self.nodes[edge.child] = node
        return node

    def edges_from(self, parent: Coordinate) -> List[DependencyEdge]:
        return list(self._outgoing.get(parent, ()))

    def edges_to(self, key: ModuleKey) -> List[DependencyEdge]:
        return list(self._incoming.get(key, ()))

    def module_keys(self) -> List[ModuleKey]:
        return list(self._incoming)

    def conflicts(self) -> Dict[ModuleKey, List[str]]:
        """Modules requested in more than one version, versions in first-seen order."""
        found: Dict[ModuleKey, List[str]] = {}
        for key, edges in self._incoming.items():
            versions = list(dict.fromkeys(edge.requested_version or "" for edge in edges))
            if len(versions) > 1:
                found[key] = versions
        return found

    def chain_between(self, start: ModuleKey, goal: ModuleKey) -> Optional[Tuple[Coordinate, ...]]:
        """Shortest chain of recorded edges leading from module ``start`` to module ``goal``.

        Modules are compared without version, so any version of ``start``
        that was expanded counts as a starting point.
        """
        previous: Dict[ModuleKey, Optional[DependencyEdge]] = {start: None}
        queue = deque([start])
        while queue:
            key = queue.popleft()
            if key == goal and key != start:
                hops: List[DependencyEdge] = []
                while previous[key] is not None:
                    edge = previous[key]
                    hops.append(edge)
                    key = edge.parent.key
                hops.reverse()
                return (hops[0].parent,) + tuple(edge.child for edge in hops)
            for edge in self._by_parent_key.get(key, ()):
                if edge.child_key not in previous:
                    previous[edge.child_key] = edge
                    queue.append(edge.child_key)
        return None

    def summary(self) -> dict:
        return {
            "root": str(self.root),
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "pruned": len(self.pruned),
            "expanded": sum(1 for n in self.nodes.values() if n.expanded),
            "conflicting_modules": len(self.conflicts()),
        }

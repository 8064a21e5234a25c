"""Version arbitration over a completed dependency graph.

Arbitration is a deterministic reduction that runs after the graph is fully
built. The precedence between candidate edges for one module is a single
total order (see ``policy_key``):

1. a version taken from the root's managed table wins outright;
2. otherwise the smallest depth wins (nearest-wins);
3. ties break on declaration order, root declarations first.

Arbitration walks the graph breadth first from the root and only follows
edges out of winning nodes, so subtrees of losing versions never contribute
candidates.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from manifest.models import Coordinate, ExclusionRule, ModuleKey, format_key
from resolver.graph import PRUNED_EXCLUDED, DependencyEdge, DependencyGraph, PrunedDeclaration

logger = logging.getLogger(__name__)

REASON_MANAGED = "managed"
REASON_NEARER = "nearer"
REASON_ORDER = "declaration-order"
REASON_DUPLICATE = "duplicate"
REASON_PARENT_LOST = "parent-lost"


@dataclass(frozen=True)
class LosingEdge:
    """An edge that did not win arbitration, and why."""
    edge: DependencyEdge
    reason: str

    def to_dict(self) -> dict:
        data = self.edge.to_dict()
        data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class ResolvedNode:
    """The single resolved version of one module.

    ``scope`` is None until the scope propagator has run.
    """
    coordinate: Coordinate
    winning_edge: DependencyEdge
    losing_edges: Tuple[LosingEdge, ...] = ()
    scope: Optional[str] = None

    @property
    def key(self) -> ModuleKey:
        return self.coordinate.key

    @property
    def version(self) -> Optional[str]:
        return self.coordinate.version

    @property
    def depth(self) -> int:
        return self.winning_edge.depth

    @property
    def managed(self) -> bool:
        return self.winning_edge.managed


@dataclass(frozen=True)
class Exclusion:
    """A module removed from the resolved set by an exclusion rule."""
    key: ModuleKey
    rule: ExclusionRule
    edges: Tuple[DependencyEdge, ...]

    def to_dict(self) -> dict:
        return {
            "module": format_key(self.key),
            "rule": str(self.rule),
            "requested_versions": sorted({e.requested_version or "" for e in self.edges}),
        }


def policy_key(edge: DependencyEdge) -> Tuple[int, int, Tuple[int, ...]]:
    """Sort key implementing the precedence order; smaller wins."""
    return (0 if edge.managed else 1, edge.depth, edge.order)


def select(candidates: Sequence[DependencyEdge]) -> Tuple[DependencyEdge, List[LosingEdge]]:
    """Pick the winner among candidate edges for one module.

    Raises:
        ValueError: if ``candidates`` is empty.
    """
    if not candidates:
        raise ValueError("No candidate edges to arbitrate")
    ranked = sorted(candidates, key=policy_key)
    winner = ranked[0]
    losers = [LosingEdge(edge, loss_reason(winner, edge)) for edge in ranked[1:]]
    return winner, losers


def loss_reason(winner: DependencyEdge, loser: DependencyEdge) -> str:
    """Explain why ``loser`` lost against ``winner``."""
    if loser.requested_version == winner.requested_version:
        return REASON_DUPLICATE
    if winner.managed and not loser.managed:
        return REASON_MANAGED
    if winner.depth < loser.depth:
        return REASON_NEARER
    return REASON_ORDER


@dataclass
class Arbitration:
    """Result of one arbitration pass."""
    nodes: "OrderedDict[ModuleKey, ResolvedNode]"
    exclusions: List[Exclusion]
    active_rules: FrozenSet[ExclusionRule]


class VersionArbiter:
    """Selects one version per module.

    Args:
        exclusion_scope: "global" also removes, from the whole result, every
            module an exclusion cut out of a winning subtree, along with
            everything only it introduced. Modules the root declares itself
            and modules on the path to the cut stay. "path" keeps exclusions
            strictly path-scoped, as applied by the builder.
    """

    def __init__(self, exclusion_scope: str = Constants.DEFAULT_EXCLUSION_SCOPE):
        if exclusion_scope not in Constants.EXCLUSION_SCOPES:
            raise ValueError(f"Unknown exclusion scope '{exclusion_scope}'")
        self.exclusion_scope = exclusion_scope

    def arbitrate(self, graph: DependencyGraph) -> "OrderedDict[ModuleKey, ResolvedNode]":
        """Map every surviving module key to its ResolvedNode."""
        return self.run(graph).nodes

    def run(self, graph: DependencyGraph) -> Arbitration:
        blocked: "OrderedDict[ModuleKey, PrunedDeclaration]" = OrderedDict()
        winners, eligible = self._walk(graph, frozenset())
        if self.exclusion_scope == "global":
            blocked = self._blocked(graph, winners)
            if blocked:
                winners, eligible = self._walk(graph, frozenset(blocked))

        nodes: "OrderedDict[ModuleKey, ResolvedNode]" = OrderedDict()
        for key, winner in winners.items():
            losing = []
            for edge in graph.edges_to(key):
                if edge is winner:
                    continue
                reason = loss_reason(winner, edge) if edge in eligible else REASON_PARENT_LOST
                losing.append(LosingEdge(edge, reason))
            losing.sort(key=lambda le: policy_key(le.edge))
            nodes[key] = ResolvedNode(winner.child, winner, tuple(losing))
            if losing and any(le.reason != REASON_DUPLICATE for le in losing) and is_debug_enabled(logger):
                logger.debug("Version conflict arbitrated", extra=extra_context(
                    event="arbitrate", component="arbiter", action="select",
                    target=format_key(key), outcome=winner.requested_version,
                    candidates=len(losing) + 1
                ))

        excluded = []
        for key in sorted(blocked):
            edges = graph.edges_to(key)
            if edges and key not in winners:
                excluded.append(Exclusion(key, blocked[key].rule, tuple(edges)))
                logger.info("Excluded %s (rule %s)", format_key(key), blocked[key].rule)
        active = frozenset(p.rule for p in blocked.values() if p.rule is not None)
        return Arbitration(nodes=nodes, exclusions=excluded, active_rules=active)

    def _walk(
        self, graph: DependencyGraph, blocked: FrozenSet[ModuleKey]
    ) -> Tuple["OrderedDict[ModuleKey, DependencyEdge]", Set[DependencyEdge]]:
        """Breadth-first walk over winning nodes.

        Returns the winner edge per key (in decision order) and the set of
        edges that were eligible candidates.
        """
        winners: "OrderedDict[ModuleKey, DependencyEdge]" = OrderedDict()
        eligible: Set[DependencyEdge] = set()
        frontier: List[Coordinate] = [graph.root]
        while frontier:
            candidates: "OrderedDict[ModuleKey, List[DependencyEdge]]" = OrderedDict()
            for parent in frontier:
                for edge in graph.edges_from(parent):
                    if edge.child_key in blocked:
                        continue
                    eligible.add(edge)
                    if edge.child_key in winners:
                        continue
                    candidates.setdefault(edge.child_key, []).append(edge)
            frontier = []
            for key, edges in candidates.items():
                winner, _ = select(edges)
                winners[key] = winner
                if winner.child not in frontier:
                    frontier.append(winner.child)
                node = graph.nodes.get(winner.child)
                if node is not None and not node.expanded and winner.child != graph.root:
                    logger.warning(
                        "Resolved %s was not expanded during graph construction; "
                        "its own dependencies are not included", winner.child,
                    )
        return winners, eligible

    @staticmethod
    def _blocked(
        graph: DependencyGraph, winners: Dict[ModuleKey, DependencyEdge]
    ) -> "OrderedDict[ModuleKey, PrunedDeclaration]":
        """Modules cut by an exclusion below a winning node, first cut per module."""
        declared_by_root = {edge.child_key for edge in graph.edges_from(graph.root)}
        blocked: "OrderedDict[ModuleKey, PrunedDeclaration]" = OrderedDict()
        for pruned in graph.pruned:
            if pruned.reason != PRUNED_EXCLUDED:
                continue
            parent = winners.get(pruned.parent.key)
            if pruned.parent != graph.root and (parent is None or parent.child != pruned.parent):
                continue
            key = pruned.dependency.key
            if key in declared_by_root or key in {c.key for c in pruned.path}:
                continue
            blocked.setdefault(key, pruned)
        return blocked

"""Tests for version arbitration."""

import pytest

from manifest import parser
from manifest.loader import ManifestLoader
from manifest.models import Coordinate, ExclusionRule
from resolver.arbiter import (
    REASON_DUPLICATE,
    REASON_MANAGED,
    REASON_NEARER,
    REASON_ORDER,
    REASON_PARENT_LOST,
    VersionArbiter,
    loss_reason,
    policy_key,
    select,
)
from resolver.builder import GraphBuilder
from resolver.graph import VERSION_EXPLICIT, VERSION_MANAGED, DependencyEdge

ROOT = Coordinate("g", "root", "1")


def edge(version, depth, order, managed=False):
    return DependencyEdge(
        parent=ROOT,
        child=Coordinate("g", "C", version),
        declared_scope="compile",
        depth=depth,
        exclusions=frozenset(),
        version_source=VERSION_MANAGED if managed else VERSION_EXPLICIT,
        order=order,
        path=(ROOT,),
    )


def graph_for(repo, root_text):
    loader = ManifestLoader(repo)
    root = loader.effective(parser.parse(root_text.encode("utf-8"), "root.yaml"))
    return GraphBuilder(loader, max_workers=2).build(root)


class TestPolicy:
    """Tests for the precedence order in isolation."""

    def test_managed_beats_nearer(self):
        managed = edge("3", 3, (2, 0, 0), managed=True)
        near = edge("1", 1, (0,))
        assert policy_key(managed) < policy_key(near)
        winner, losers = select([near, managed])
        assert winner is managed
        assert losers[0].reason == REASON_MANAGED

    def test_nearer_beats_declaration_order(self):
        deep = edge("2", 2, (0, 0))
        shallow = edge("1", 1, (5,))
        winner, losers = select([deep, shallow])
        assert winner is shallow
        assert losers[0].reason == REASON_NEARER

    def test_declaration_order_breaks_ties(self):
        first = edge("2", 2, (0, 0))
        second = edge("1", 2, (1, 0))
        winner, losers = select([second, first])
        assert winner is first
        assert losers[0].reason == REASON_ORDER

    def test_root_order_dominates_inner_order(self):
        assert policy_key(edge("2", 2, (0, 9))) < policy_key(edge("1", 2, (1, 0)))

    def test_same_version_is_a_duplicate(self):
        assert loss_reason(edge("1", 1, (0,)), edge("1", 2, (1, 0))) == REASON_DUPLICATE

    def test_select_is_independent_of_input_order(self):
        edges = [edge("1", 2, (1, 0)), edge("2", 2, (0, 0)), edge("3", 3, (0, 1, 0))]
        assert select(edges)[0] is select(list(reversed(edges)))[0]

    def test_select_requires_candidates(self):
        with pytest.raises(ValueError):
            select([])

    def test_unknown_exclusion_scope(self):
        with pytest.raises(ValueError):
            VersionArbiter("nowhere")


class TestScenarios:
    """End-to-end arbitration over built graphs."""

    def test_declaration_order_tie_break(self, scenario_a):
        repo, root = scenario_a
        nodes = VersionArbiter().arbitrate(graph_for(repo, root.decode("utf-8")))
        c = nodes[("g", "C")]
        assert c.version == "2"
        assert c.depth == 2
        assert [(le.edge.requested_version, le.reason) for le in c.losing_edges] == [("1", REASON_ORDER)]

    def test_bom_managed_version_wins(self, scenario_a, manifest_yaml):
        repo, _ = scenario_a
        repo.add("g:bom:1", manifest_yaml("g:bom:1", managed=["g:C:3"]))
        repo.add("g:C:3", manifest_yaml("g:C:3"))
        root = manifest_yaml("g:root:1", ["g:A:1", "g:B:1"], imports=["g:bom:1"])
        nodes = VersionArbiter().arbitrate(graph_for(repo, root))
        c = nodes[("g", "C")]
        assert c.version == "3"
        assert c.managed
        assert c.winning_edge.managed_origin == "bom g:bom:1"

    def test_nearest_wins(self, repo, manifest_yaml):
        repo.add("g:A:1", manifest_yaml("g:A:1", ["g:C:2"]))
        repo.add("g:C:1", manifest_yaml("g:C:1"))
        repo.add("g:C:2", manifest_yaml("g:C:2"))
        nodes = VersionArbiter().arbitrate(graph_for(repo, manifest_yaml("g:root:1", ["g:A:1", "g:C:1"])))
        assert nodes[("g", "C")].version == "1"
        assert nodes[("g", "C")].losing_edges[0].reason == REASON_NEARER

    def test_losing_subtree_contributes_nothing(self, repo, manifest_yaml):
        # C:2 loses to the nearer C:1, so its dependency on E never enters the result
        repo.add("g:A:1", manifest_yaml("g:A:1", ["g:C:2"]))
        repo.add("g:C:1", manifest_yaml("g:C:1"))
        repo.add("g:C:2", manifest_yaml("g:C:2", ["g:E:1"]))
        repo.add("g:E:1", manifest_yaml("g:E:1"))
        nodes = VersionArbiter().arbitrate(graph_for(repo, manifest_yaml("g:root:1", ["g:A:1", "g:C:1"])))
        assert ("g", "E") not in nodes

    def test_exclusion_blocks_module_reachable_elsewhere(self, repo, manifest_yaml):
        repo.add("g:A:1", manifest_yaml("g:A:1", ["groupX:D:1"]))
        repo.add("g:B:1", manifest_yaml("g:B:1", ["groupX:D:1"]))
        repo.add("groupX:D:1", manifest_yaml("groupX:D:1"))
        root = manifest_yaml("g:root:1", [
            {"coordinate": "g:A:1", "exclusions": ["groupX:*"]},
            "g:B:1",
        ])
        graph = graph_for(repo, root)

        result = VersionArbiter("global").run(graph)
        assert ("groupX", "D") not in result.nodes
        assert [e.key for e in result.exclusions] == [("groupX", "D")]
        assert result.exclusions[0].rule == ExclusionRule("groupX", "*")
        assert result.active_rules == frozenset({ExclusionRule("groupX", "*")})

        path_scoped = VersionArbiter("path").run(graph)
        assert path_scoped.nodes[("groupX", "D")].version == "1"
        assert path_scoped.exclusions == []

    def test_global_exclusion_drops_excluded_subtree(self, repo, manifest_yaml):
        repo.add("g:A:1", manifest_yaml("g:A:1", ["x:D:1"]))
        repo.add("g:B:1", manifest_yaml("g:B:1", ["x:D:1"]))
        repo.add("x:D:1", manifest_yaml("x:D:1", ["g:F:1"]))
        repo.add("g:F:1", manifest_yaml("g:F:1"))
        root = manifest_yaml("g:root:1", [{"coordinate": "g:A:1", "exclusions": ["x:D"]}, "g:B:1"])
        result = VersionArbiter().run(graph_for(repo, root))
        assert ("x", "D") not in result.nodes
        # F was only reachable through the excluded module
        assert ("g", "F") not in result.nodes

    def test_decision_order_is_breadth_first(self, scenario_a):
        repo, root = scenario_a
        nodes = VersionArbiter().arbitrate(graph_for(repo, root.decode("utf-8")))
        assert list(nodes) == [("g", "A"), ("g", "B"), ("g", "C")]

    def test_parent_lost_reason(self, repo, manifest_yaml):
        # x:D is excluded globally, so its request for F:2 no longer competes
        repo.add("g:A:1", manifest_yaml("g:A:1", ["x:D:1"]))
        repo.add("g:B:1", manifest_yaml("g:B:1", ["x:D:1"]))
        repo.add("g:G:1", manifest_yaml("g:G:1", ["g:F:1"]))
        repo.add("x:D:1", manifest_yaml("x:D:1", ["g:F:2"]))
        repo.add("g:F:1", manifest_yaml("g:F:1"))
        root = manifest_yaml("g:root:1", [
            {"coordinate": "g:A:1", "exclusions": ["x:D"]}, "g:B:1", "g:G:1",
        ])
        result = VersionArbiter().run(graph_for(repo, root))
        f = result.nodes[("g", "F")]
        assert f.version == "1"
        assert [(le.edge.requested_version, le.reason) for le in f.losing_edges] == [("2", REASON_PARENT_LOST)]
        assert ("x", "D") not in result.nodes

    def test_match_all_exclusion_keeps_unrelated_dependencies(self, repo, manifest_yaml):
        repo.add("g:A:1", manifest_yaml("g:A:1", ["g:C:1"]))
        repo.add("h:B:1", manifest_yaml("h:B:1"))
        root = manifest_yaml("g:root:1", [{"coordinate": "g:A:1", "exclusions": ["*:*"]}, "h:B:1"])
        result = VersionArbiter().run(graph_for(repo, root))
        assert list(result.nodes) == [("g", "A"), ("h", "B")]
        assert ("g", "C") not in result.nodes

    def test_exclusion_never_removes_the_declaring_module(self, repo, manifest_yaml):
        repo.add("x:A:1", manifest_yaml("x:A:1", ["x:D:1"]))
        root = manifest_yaml("g:root:1", [{"coordinate": "x:A:1", "exclusions": ["x:*"]}])
        result = VersionArbiter().run(graph_for(repo, root))
        assert result.nodes[("x", "A")].version == "1"
        assert ("x", "D") not in result.nodes

    def test_exclusion_keeps_module_declared_by_root(self, repo, manifest_yaml):
        repo.add("g:A:1", manifest_yaml("g:A:1", ["h:B:2"]))
        repo.add("h:B:1", manifest_yaml("h:B:1"))
        root = manifest_yaml("g:root:1", [{"coordinate": "g:A:1", "exclusions": ["*:*"]}, "h:B:1"])
        result = VersionArbiter().run(graph_for(repo, root))
        assert result.nodes[("h", "B")].version == "1"
        assert result.exclusions == []

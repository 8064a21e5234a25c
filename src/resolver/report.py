"""Flattened resolution output and its exporters."""
from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from errors import ResolutionError
from manifest.models import Coordinate, ModuleKey, format_key
from resolver.arbiter import Exclusion, ResolvedNode
from resolver.graph import PrunedDeclaration
from resolver.propagation import ScopeDrop

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "group",
    "artifact",
    "version",
    "scope",
    "depth",
    "managed",
    "version_source",
    "losing_edges",
    "path",
]


@dataclass(frozen=True)
class ResolvedSet:
    """Final dependency set of one module, sorted by (group, artifact)."""
    root: Coordinate
    nodes: Tuple[ResolvedNode, ...]
    exclusions: Tuple[Exclusion, ...] = ()
    scope_drops: Tuple[ScopeDrop, ...] = ()
    pruned: Tuple[PrunedDeclaration, ...] = field(default=(), compare=False)

    @classmethod
    def from_nodes(cls, root: Coordinate, nodes: Dict[ModuleKey, ResolvedNode], **kwargs: Any) -> "ResolvedSet":
        ordered = tuple(nodes[key] for key in sorted(nodes))
        return cls(root=root, nodes=ordered, **kwargs)

    def __iter__(self) -> Iterator[ResolvedNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, key: object) -> bool:
        return any(node.key == key for node in self.nodes)

    def get(self, group: str, artifact: str) -> Optional[ResolvedNode]:
        for node in self.nodes:
            if node.key == (group, artifact):
                return node
        return None

    def versions(self) -> Dict[str, str]:
        """``group:artifact`` -> resolved version."""
        return {format_key(n.key): str(n.version) for n in self.nodes}

    def rows(self) -> List[Dict[str, Any]]:
        rows = []
        for node in self.nodes:
            rows.append({
                "group": node.coordinate.group,
                "artifact": node.coordinate.artifact,
                "version": node.version,
                "scope": node.scope,
                "depth": node.depth,
                "managed": node.managed,
                "version_source": node.winning_edge.version_source,
                "path": [str(c) for c in node.winning_edge.full_path],
            })
        return rows

    def diagnostics(self) -> Dict[str, Any]:
        """Every losing edge per module plus exclusions and dropped modules."""
        conflicts = {}
        for node in self.nodes:
            if node.losing_edges:
                conflicts[format_key(node.key)] = [le.to_dict() for le in node.losing_edges]
        return {
            "losing_edges": conflicts,
            "excluded": [e.to_dict() for e in self.exclusions],
            "dropped_by_scope": [d.to_dict() for d in self.scope_drops],
            "pruned": [p.to_dict() for p in self.pruned],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "dependencies": self.rows(),
            "diagnostics": self.diagnostics(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)


def export_json(resolved: ResolvedSet, path: str) -> None:
    """Write the resolved set and diagnostics as JSON.

    Args:
        resolved: Result of a resolution run.
        path: Output file path.
    """
    try:
        with open(path, "w", encoding="utf-8") as file:
            file.write(resolved.to_json())
            file.write("\n")
        logger.info("JSON file saved successfully: %s", path)
    except OSError as e:
        logger.error("JSON file couldn't be written to disk: %s", e)
        raise


def write_csv(resolved: ResolvedSet, file) -> None:
    """Write one CSV row per resolved module to an open text stream."""
    writer = csv.writer(file, dialect="excel", quoting=csv.QUOTE_ALL)
    writer.writerow(CSV_HEADERS)
    for node in resolved:
        writer.writerow([
            node.coordinate.group,
            node.coordinate.artifact,
            node.version,
            node.scope,
            node.depth,
            node.managed,
            node.winning_edge.version_source,
            ";".join(
                f"{le.edge.requested_version}@{le.edge.depth}:{le.reason}" for le in node.losing_edges
            ),
            " > ".join(str(c) for c in node.winning_edge.full_path),
        ])


def render_csv(resolved: ResolvedSet) -> str:
    buffer = io.StringIO()
    write_csv(resolved, buffer)
    return buffer.getvalue()


def export_csv(resolved: ResolvedSet, path: str) -> None:
    """Write the resolved set as CSV.

    Args:
        resolved: Result of a resolution run.
        path: Output file path.
    """
    try:
        with open(path, "w", newline="", encoding="utf-8") as file:
            write_csv(resolved, file)
        logger.info("CSV file saved successfully: %s", path)
    except OSError as e:
        logger.error("CSV file couldn't be written to disk: %s", e)
        raise


def render_text(resolved: ResolvedSet) -> str:
    """Human-readable table of the resolved set with a conflicts section."""
    lines = [f"Resolved dependencies of {resolved.root}:"]
    if not resolved.nodes:
        lines.append("  (none)")
    width = max((len(format_key(n.key)) for n in resolved.nodes), default=0)
    for node in resolved:
        marker = " (managed)" if node.managed else ""
        lines.append(f"  {format_key(node.key):<{width}}  {node.version:<12} {node.scope}{marker}")
    conflicts = [n for n in resolved if n.losing_edges]
    if conflicts:
        lines.append("")
        lines.append("Conflicts:")
        for node in conflicts:
            lines.append(f"  {format_key(node.key)} -> {node.version}")
            for le in node.losing_edges:
                lines.append(
                    f"    {le.edge.requested_version} at depth {le.edge.depth} ({le.reason}) via "
                    + " > ".join(str(c) for c in le.edge.path)
                )
    if resolved.exclusions:
        lines.append("")
        lines.append("Excluded:")
        for item in resolved.exclusions:
            lines.append(f"  {format_key(item.key)} by rule {item.rule}")
    return "\n".join(lines)


@dataclass(frozen=True)
class FailureReport:
    """Diagnostics for a failed run: the error and the graph built before it."""
    error: Dict[str, Any]
    partial_graph: Optional[Dict[str, Any]] = None
    conflicts: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_error(cls, exc: ResolutionError) -> "FailureReport":
        graph = exc.partial_graph
        if graph is None:
            return cls(exc.to_dict())
        conflicts = {format_key(key): versions for key, versions in sorted(graph.conflicts().items())}
        return cls(exc.to_dict(), graph.summary(), conflicts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "failed",
            "error": self.error,
            "partial_graph": self.partial_graph,
            "conflicts": self.conflicts,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    def rows(self) -> List[Tuple[str, str]]:
        """Flat (field, value) pairs for CSV output."""
        rows = []
        for name, value in self.error.items():
            if isinstance(value, list):
                value = " > ".join(value)
            rows.append((f"error.{name}", "" if value is None else str(value)))
        for name, value in (self.partial_graph or {}).items():
            rows.append((f"partial_graph.{name}", str(value)))
        for module, versions in self.conflicts.items():
            rows.append((f"conflicts.{module}", ";".join(versions)))
        return rows


def render_failure_csv(report: FailureReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, dialect="excel", quoting=csv.QUOTE_ALL)
    writer.writerow(["field", "value"])
    writer.writerows(report.rows())
    return buffer.getvalue()


def render_failure_text(report: FailureReport) -> str:
    error = report.error
    lines = [f"Resolution failed ({error['kind']}): {error['message']}"]
    if error.get("coordinate"):
        lines.append(f"  coordinate: {error['coordinate']}")
    if error.get("path"):
        lines.append("  path: " + " -> ".join(error["path"]))
    if report.partial_graph:
        graph = report.partial_graph
        lines.append(
            f"Partial graph: {graph['nodes']} nodes, {graph['edges']} edges, "
            f"{graph['pruned']} pruned declarations"
        )
    for module, versions in report.conflicts.items():
        lines.append(f"  {module} requested as {', '.join(versions)}")
    return "\n".join(lines)

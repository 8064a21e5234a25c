"""Manifest parsing for Maven POM XML and YAML/JSON manifests.

The parser turns raw bytes into a *raw* Manifest: placeholders are kept as
written and the managed table holds local entries only. Interpolation and
parent/BOM merging are done by the loader.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

import yaml

from constants import Constants, Scopes
from common.logging_utils import extra_context, is_debug_enabled
from errors import ManifestParseError
from manifest.models import (
    Coordinate,
    DeclaredDependency,
    ExclusionRule,
    ManagedEntry,
    ManagedVersions,
    Manifest,
)

logger = logging.getLogger(__name__)

_KNOWN_SCOPES = {s.value for s in Scopes}
_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0", ""}


def detect_format(data: bytes, source_name: str = "") -> str:
    """Return "pom" or "yaml" for the given manifest content."""
    lowered = source_name.lower()
    if lowered.endswith(Constants.POM_SUFFIX) or lowered.endswith(".xml"):
        return "pom"
    if lowered.endswith(Constants.YAML_SUFFIXES):
        return "yaml"
    head = data.lstrip()[:1]
    if head == b"<":
        return "pom"
    return "yaml"


def parse(data: bytes, source_name: str = "<bytes>") -> Manifest:
    """Parse manifest bytes into a raw Manifest.

    Args:
        data: Raw manifest content.
        source_name: File name or coordinate used for error context and
            format detection.

    Raises:
        ManifestParseError: On malformed input, with line and/or field context.
    """
    fmt = detect_format(data, source_name)
    if is_debug_enabled(logger):
        logger.debug("Parsing manifest", extra=extra_context(
            event="function_entry", component="parser", action="parse",
            target=source_name, format=fmt
        ))
    if fmt == "pom":
        return parse_pom(data, source_name)
    return parse_yaml(data, source_name)


# --------------------------------------------------------------------------
# POM XML
# --------------------------------------------------------------------------

def _text(elem: Optional[ET.Element], tag: str, ns: str) -> Optional[str]:
    if elem is None:
        return None
    node = elem.find(f"{ns}{tag}")
    if node is None or node.text is None:
        return None
    value = node.text.strip()
    return value or None


def _check_scope(scope: Optional[str], source_name: str, field: str) -> Optional[str]:
    if scope is None or "${" in scope:
        return scope
    if scope not in _KNOWN_SCOPES:
        raise ManifestParseError(f"Unknown scope '{scope}'", source_name=source_name, field=field)
    return scope


def _parse_bool(value: Any, source_name: str, field: str, line: Optional[int] = None) -> bool:
    if isinstance(value, bool):
        return value
    text = "" if value is None else str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ManifestParseError(
        f"Expected a boolean, got '{value}'", source_name=source_name, field=field, line=line
    )


def _pom_exclusions(dep_elem: ET.Element, ns: str, source_name: str, field: str) -> List[ExclusionRule]:
    rules: List[ExclusionRule] = []
    container = dep_elem.find(f"{ns}exclusions")
    if container is None:
        return rules
    for idx, excl in enumerate(container.findall(f"{ns}exclusion")):
        group = _text(excl, "groupId", ns)
        artifact = _text(excl, "artifactId", ns)
        if group is None or artifact is None:
            missing = "groupId" if group is None else "artifactId"
            raise ManifestParseError(
                "Exclusion is missing a required element",
                source_name=source_name,
                field=f"{field}.exclusions[{idx}].{missing}",
            )
        rules.append(ExclusionRule(group, artifact))
    return rules


def _pom_dependency(dep_elem: ET.Element, ns: str, source_name: str, field: str) -> DeclaredDependency:
    group = _text(dep_elem, "groupId", ns)
    artifact = _text(dep_elem, "artifactId", ns)
    if group is None:
        raise ManifestParseError("Dependency has no groupId", source_name=source_name, field=f"{field}.groupId")
    if artifact is None:
        raise ManifestParseError(
            "Dependency has no artifactId", source_name=source_name, field=f"{field}.artifactId"
        )
    scope = _check_scope(_text(dep_elem, "scope", ns), source_name, f"{field}.scope")
    optional = _parse_bool(_text(dep_elem, "optional", ns), source_name, f"{field}.optional")
    return DeclaredDependency(
        group=group,
        artifact=artifact,
        version=_text(dep_elem, "version", ns),
        scope=scope,
        exclusions=frozenset(_pom_exclusions(dep_elem, ns, source_name, field)),
        optional=optional,
        type=_text(dep_elem, "type", ns) or "jar",
    )


def parse_pom(data: bytes, source_name: str = "<bytes>") -> Manifest:  # pylint: disable=too-many-locals
    """Parse a Maven POM document."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        line = exc.position[0] if getattr(exc, "position", None) else None
        raise ManifestParseError(f"Malformed XML: {exc}", source_name=source_name, line=line) from exc

    ns = ""
    if root.tag.startswith("{"):
        ns = root.tag[: root.tag.index("}") + 1]
    if root.tag != f"{ns}project":
        raise ManifestParseError(
            f"Root element must be <project>, got <{root.tag[len(ns):]}>",
            source_name=source_name, field="project",
        )

    parent_elem = root.find(f"{ns}parent")
    parent: Optional[Coordinate] = None
    if parent_elem is not None:
        p_group = _text(parent_elem, "groupId", ns)
        p_artifact = _text(parent_elem, "artifactId", ns)
        p_version = _text(parent_elem, "version", ns)
        if not (p_group and p_artifact and p_version):
            raise ManifestParseError(
                "Parent must declare groupId, artifactId and version",
                source_name=source_name, field="parent",
            )
        parent = Coordinate(p_group, p_artifact, p_version)

    group = _text(root, "groupId", ns) or (parent.group if parent else None)
    artifact = _text(root, "artifactId", ns)
    version = _text(root, "version", ns) or (parent.version if parent else None)
    if group is None:
        raise ManifestParseError("Project has no groupId", source_name=source_name, field="groupId")
    if artifact is None:
        raise ManifestParseError("Project has no artifactId", source_name=source_name, field="artifactId")

    properties: List[Tuple[str, str]] = []
    props_elem = root.find(f"{ns}properties")
    if props_elem is not None:
        for prop in props_elem:
            if not isinstance(prop.tag, str):
                continue
            name = prop.tag[len(ns):] if prop.tag.startswith(ns) else prop.tag
            properties.append((name, (prop.text or "").strip()))

    dependencies: List[DeclaredDependency] = []
    deps_elem = root.find(f"{ns}dependencies")
    if deps_elem is not None:
        for idx, dep_elem in enumerate(deps_elem.findall(f"{ns}dependency")):
            dependencies.append(_pom_dependency(dep_elem, ns, source_name, f"dependencies[{idx}]"))

    managed: Dict[Tuple[str, str], ManagedEntry] = {}
    imports: List[DeclaredDependency] = []
    dm_deps = root.find(f"{ns}dependencyManagement/{ns}dependencies")
    if dm_deps is not None:
        for idx, dep_elem in enumerate(dm_deps.findall(f"{ns}dependency")):
            field = f"dependencyManagement[{idx}]"
            dep = _pom_dependency(dep_elem, ns, source_name, field)
            if dep.version is None:
                raise ManifestParseError(
                    "Managed dependency has no version", source_name=source_name, field=f"{field}.version"
                )
            if dep.is_bom_import:
                imports.append(dep)
            elif dep.key not in managed:
                managed[dep.key] = ManagedEntry(version=dep.version, scope=dep.scope, origin="local")

    return Manifest(
        coordinate=Coordinate(group, artifact, version),
        dependencies=tuple(dependencies),
        managed=ManagedVersions(managed),
        bom_imports=tuple(imports),
        parent=parent,
        properties=tuple(properties),
        packaging=_text(root, "packaging", ns) or "jar",
        source_name=source_name,
    )


# --------------------------------------------------------------------------
# YAML / JSON
# --------------------------------------------------------------------------

def _yaml_line(node: Optional[yaml.Node], path: List[Any]) -> Optional[int]:
    """Walk a composed YAML node tree along ``path`` and return a 1-based line."""
    line = node.start_mark.line + 1 if node is not None else None
    for part in path:
        if isinstance(node, yaml.MappingNode):
            found = None
            for key_node, value_node in node.value:
                if key_node.value == part:
                    found = value_node
                    break
            node = found
        elif isinstance(node, yaml.SequenceNode) and isinstance(part, int) and part < len(node.value):
            node = node.value[part]
        else:
            node = None
        if node is None:
            break
        line = node.start_mark.line + 1
    return line


class _YamlReader:
    """Field-path aware accessors over a loaded YAML document."""

    def __init__(self, data: Any, tree: Optional[yaml.Node], source_name: str):
        self.data = data
        self.tree = tree
        self.source_name = source_name

    def fail(self, message: str, path: List[Any]) -> ManifestParseError:
        field = ""
        for part in path:
            field += f"[{part}]" if isinstance(part, int) else (f".{part}" if field else str(part))
        return ManifestParseError(
            message, source_name=self.source_name, field=field or None, line=_yaml_line(self.tree, path)
        )

    def coordinate(self, value: Any, path: List[Any], require_version: bool = False) -> Coordinate:
        if isinstance(value, dict):
            group = value.get("group")
            artifact = value.get("artifact")
            version = value.get("version")
            if not group or not artifact:
                raise self.fail("Expected 'group' and 'artifact'", path)
            coord = Coordinate(str(group), str(artifact), None if version is None else str(version))
        elif isinstance(value, str):
            try:
                coord = Coordinate.parse(value)
            except ValueError as exc:
                raise self.fail(str(exc), path) from exc
        else:
            raise self.fail("Expected a coordinate string or mapping", path)
        if require_version and not coord.version:
            raise self.fail("Coordinate must include a version", path)
        return coord

    def exclusions(self, value: Any, path: List[Any]) -> List[ExclusionRule]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise self.fail("Expected a list of exclusions", path)
        rules = []
        for idx, item in enumerate(value):
            coord = self.coordinate(item, path + [idx])
            if coord.version:
                raise self.fail("Exclusions take group:artifact only", path + [idx])
            rules.append(ExclusionRule(coord.group, coord.artifact))
        return rules

    def dependency(self, item: Any, path: List[Any]) -> DeclaredDependency:
        if isinstance(item, str):
            item = {"coordinate": item}
        if not isinstance(item, dict):
            raise self.fail("Expected a dependency mapping", path)
        coord_value = item.get("coordinate", item)
        coord_path = path + ["coordinate"] if "coordinate" in item else path
        coord = self.coordinate(coord_value, coord_path)
        scope = item.get("scope")
        if scope is not None:
            scope = str(scope)
            if "${" not in scope and scope not in _KNOWN_SCOPES:
                raise self.fail(f"Unknown scope '{scope}'", path + ["scope"])
        try:
            optional = _parse_bool(item.get("optional", False), self.source_name, "optional")
        except ManifestParseError as exc:
            raise self.fail(exc.message, path + ["optional"]) from exc
        return DeclaredDependency(
            group=coord.group,
            artifact=coord.artifact,
            version=coord.version,
            scope=scope,
            exclusions=frozenset(self.exclusions(item.get("exclusions"), path + ["exclusions"])),
            optional=optional,
            type=str(item.get("type", "jar")),
        )

    def listing(self, key: str) -> List[Any]:
        value = self.data.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            raise self.fail(f"'{key}' must be a list", [key])
        return value


def parse_yaml(data: bytes, source_name: str = "<bytes>") -> Manifest:
    """Parse a YAML (or JSON) manifest document."""
    try:
        text = data.decode("utf-8")
        document = yaml.safe_load(text)
        tree = yaml.compose(text, Loader=yaml.SafeLoader)
    except UnicodeDecodeError as exc:
        raise ManifestParseError(f"Manifest is not UTF-8: {exc}", source_name=source_name) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        raise ManifestParseError(f"Malformed YAML: {exc}", source_name=source_name, line=line) from exc

    if not isinstance(document, dict):
        raise ManifestParseError("Manifest must be a mapping", source_name=source_name, line=1)

    reader = _YamlReader(document, tree, source_name)
    if "coordinate" not in document:
        raise reader.fail("Manifest has no coordinate", ["coordinate"])
    coordinate = reader.coordinate(document["coordinate"], ["coordinate"])
    parent = None
    if document.get("parent") is not None:
        parent = reader.coordinate(document["parent"], ["parent"], require_version=True)

    properties = document.get("properties") or {}
    if not isinstance(properties, dict):
        raise reader.fail("'properties' must be a mapping", ["properties"])

    dependencies = [
        reader.dependency(item, ["dependencies", idx])
        for idx, item in enumerate(reader.listing("dependencies"))
    ]

    managed: Dict[Tuple[str, str], ManagedEntry] = {}
    for idx, item in enumerate(reader.listing("managed")):
        dep = reader.dependency(item, ["managed", idx])
        if dep.version is None:
            raise reader.fail("Managed entry has no version", ["managed", idx])
        if dep.key not in managed:
            managed[dep.key] = ManagedEntry(version=dep.version, scope=dep.scope, origin="local")

    imports = []
    for idx, item in enumerate(reader.listing("imports")):
        coord = reader.coordinate(item, ["imports", idx], require_version=True)
        imports.append(DeclaredDependency(
            coord.group, coord.artifact, coord.version, scope=Scopes.IMPORT.value, type="pom"
        ))

    return Manifest(
        coordinate=coordinate,
        dependencies=tuple(dependencies),
        managed=ManagedVersions(managed),
        bom_imports=tuple(imports),
        parent=parent,
        properties=tuple((str(k), "" if v is None else str(v)) for k, v in properties.items()),
        packaging=str(document.get("packaging", "jar")),
        source_name=source_name,
    )

"""Shared fixtures: small in-memory manifest repositories."""

import pytest
import yaml

from manifest.sources import MemorySource


def render_manifest(coordinate, dependencies=(), managed=(), imports=(), parent=None, properties=None):
    """Render a YAML manifest document from plain Python values."""
    doc = {"coordinate": coordinate}
    if parent:
        doc["parent"] = parent
    if properties:
        doc["properties"] = dict(properties)
    if dependencies:
        doc["dependencies"] = list(dependencies)
    if managed:
        doc["managed"] = list(managed)
    if imports:
        doc["imports"] = list(imports)
    return yaml.safe_dump(doc, sort_keys=False)


@pytest.fixture
def manifest_yaml():
    """Factory returning YAML text for a manifest."""
    return render_manifest


@pytest.fixture
def repo():
    """Empty MemorySource; tests add manifests with ``repo.add(coord, text)``."""
    return MemorySource()


@pytest.fixture
def scenario_a(repo):
    """Root -> A:1, B:1; A:1 -> C:2; B:1 -> C:1."""
    repo.add("g:A:1", render_manifest("g:A:1", ["g:C:2"]))
    repo.add("g:B:1", render_manifest("g:B:1", ["g:C:1"]))
    repo.add("g:C:1", render_manifest("g:C:1"))
    repo.add("g:C:2", render_manifest("g:C:2"))
    root = render_manifest("g:root:1", ["g:A:1", "g:B:1"])
    return repo, root.encode("utf-8")

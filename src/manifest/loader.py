"""Memoized manifest loading and effective-model building.

One ManifestLoader lives for exactly one resolution run. Raw manifests are
fetched and parsed at most once per coordinate, even when several worker
threads ask for the same coordinate at the same time: the first requester
does the fetch and the others wait on the same in-flight future.
"""
from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, Timer
from errors import CyclicDependencyError, ManifestNotFound, ManifestUnavailable
from manifest import parser
from manifest.models import (
    Coordinate,
    DeclaredDependency,
    ExclusionRule,
    ManagedEntry,
    ManagedVersions,
    Manifest,
    ModuleKey,
)
from manifest.sources import ManifestSource, SourceIOError, SourceNotFound

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")
_MAX_INTERPOLATION_PASSES = 10


def interpolate(value: Optional[str], properties: Dict[str, str]) -> Optional[str]:
    """Substitute ``${name}`` placeholders; unknown names are left as written."""
    if value is None or "${" not in value:
        return value
    for _ in range(_MAX_INTERPOLATION_PASSES):
        replaced = _PLACEHOLDER.sub(lambda m: properties.get(m.group(1), m.group(0)), value)
        if replaced == value:
            break
        value = replaced
    return value


def is_unresolved(value: Optional[str]) -> bool:
    """True when a version is missing or still holds a placeholder."""
    return not value or "${" in value


class ManifestLoader:
    """Loads effective manifests for one resolution run.

    Args:
        source: The manifest source collaborator.
        bom_conflict_policy: "first" (first-declared BOM wins) or "last".
    """

    def __init__(self, source: ManifestSource, bom_conflict_policy: str = Constants.DEFAULT_BOM_CONFLICT_POLICY):
        if bom_conflict_policy not in Constants.BOM_CONFLICT_POLICIES:
            raise ValueError(f"Unknown BOM conflict policy '{bom_conflict_policy}'")
        self.source = source
        self.bom_conflict_policy = bom_conflict_policy
        self._lock = threading.Lock()
        self._raw: Dict[Coordinate, Future] = {}
        self._effective: Dict[Coordinate, Manifest] = {}

    def clear(self) -> None:
        """Forget everything loaded so far."""
        with self._lock:
            self._raw.clear()
            self._effective.clear()

    @property
    def fetched(self) -> List[Coordinate]:
        with self._lock:
            return list(self._raw)

    # ------------------------------------------------------------------
    # raw get-or-load
    # ------------------------------------------------------------------

    def load_raw(self, coordinate: Coordinate) -> Manifest:
        """Fetch and parse a manifest, at most once per coordinate."""
        with self._lock:
            future = self._raw.get(coordinate)
            owner = future is None
            if owner:
                future = Future()
                self._raw[coordinate] = future
        if owner:
            try:
                future.set_result(self._fetch_and_parse(coordinate))
            except BaseException as exc:  # pylint: disable=broad-exception-caught
                future.set_exception(exc)
        return future.result()

    def _fetch_and_parse(self, coordinate: Coordinate) -> Manifest:
        with Timer() as t:
            try:
                data = self.source.fetch(coordinate)
            except SourceNotFound as exc:
                raise ManifestNotFound(f"Manifest not found: {exc}", coordinate) from exc
            except SourceIOError as exc:
                raise ManifestUnavailable(f"Manifest unavailable: {exc}", coordinate) from exc
            manifest = parser.parse(data, source_name=str(coordinate))
        if is_debug_enabled(logger):
            logger.debug("Manifest loaded", extra=extra_context(
                event="function_exit", component="loader", action="fetch_and_parse",
                target=str(coordinate), outcome="success", duration_ms=t.duration_ms()
            ))
        if manifest.coordinate.key != coordinate.key:
            logger.warning(
                "Manifest fetched for %s declares coordinate %s", coordinate, manifest.coordinate
            )
        return manifest

    # ------------------------------------------------------------------
    # effective model
    # ------------------------------------------------------------------

    def load(self, coordinate: Coordinate, chain: Sequence[ModuleKey] = ()) -> Manifest:
        """Return the effective manifest for a versioned coordinate."""
        with self._lock:
            cached = self._effective.get(coordinate)
        if cached is not None:
            return cached
        effective = self.effective(self.load_raw(coordinate), chain)
        with self._lock:
            return self._effective.setdefault(coordinate, effective)

    def effective(self, raw: Manifest, chain: Sequence[ModuleKey] = ()) -> Manifest:
        """Interpolate and merge parent/BOM tables into a raw manifest.

        ``chain`` holds the modules whose effective model is being built
        further up the parent/import stack, for loop detection.
        """
        if raw.effective:
            return raw
        chain = tuple(chain) + (raw.key,)

        parent_manifest: Optional[Manifest] = None
        if raw.parent is not None:
            parent_manifest = self._load_model(raw.parent, chain, "parent")

        properties: Dict[str, str] = {}
        if parent_manifest is not None:
            properties.update(parent_manifest.property_map())
        properties.update(raw.property_map())
        properties["project.groupId"] = raw.coordinate.group
        properties["project.artifactId"] = raw.coordinate.artifact
        if raw.coordinate.version:
            properties["project.version"] = raw.coordinate.version
        if raw.parent is not None:
            properties["project.parent.version"] = str(raw.parent.version)
            properties["project.parent.groupId"] = raw.parent.group
        properties = {k: interpolate(v, properties) or "" for k, v in properties.items()}

        coordinate = Coordinate(
            raw.coordinate.group,
            raw.coordinate.artifact,
            interpolate(raw.coordinate.version, properties),
        )
        dependencies = tuple(_interpolate_dependency(d, properties) for d in raw.dependencies)
        imports = tuple(_interpolate_dependency(d, properties) for d in raw.bom_imports)

        local = ManagedVersions({
            key: ManagedEntry(
                version=interpolate(entry.version, properties) or entry.version,
                scope=interpolate(entry.scope, properties),
                origin=entry.origin,
            )
            for key, entry in raw.managed.items()
        })
        managed = local
        if parent_manifest is not None:
            managed = managed.merged_under(_relabel(parent_manifest.managed, f"parent {parent_manifest.coordinate}"))
        if imports:
            managed = managed.merged_under(self._bom_table(imports, chain))

        if is_debug_enabled(logger):
            logger.debug("Effective manifest built", extra=extra_context(
                event="function_exit", component="loader", action="effective",
                target=str(coordinate), managed_entries=len(managed), bom_imports=len(imports)
            ))

        return replace(
            raw,
            coordinate=coordinate,
            dependencies=dependencies,
            bom_imports=imports,
            managed=managed,
            properties=tuple(sorted(properties.items())),
            effective=True,
        )

    def _load_model(self, coordinate: Coordinate, chain: Tuple[ModuleKey, ...], role: str) -> Manifest:
        if coordinate.key in chain:
            path = [Coordinate(*key) for key in chain] + [coordinate]
            raise CyclicDependencyError(f"Cyclic {role} reference", coordinate, path)
        try:
            return self.load(coordinate, chain)
        except ManifestNotFound as exc:
            raise exc.with_path([Coordinate(*key) for key in chain] + [coordinate])

    def _bom_table(self, imports: Sequence[DeclaredDependency], chain: Tuple[ModuleKey, ...]) -> ManagedVersions:
        """Merge imported BOM tables in declaration order."""
        merged = ManagedVersions()
        prefer_earlier = self.bom_conflict_policy == "first"
        for bom in imports:
            bom_coord = bom.coordinate
            bom_manifest = self._load_model(bom_coord, chain, "BOM import")
            table = _relabel(bom_manifest.managed, f"bom {bom_manifest.coordinate}")
            for key, entry in table.items():
                existing = merged.get(key)
                if existing is not None and existing.version != entry.version:
                    logger.info(
                        "BOM conflict for %s:%s: %s (%s) vs %s (%s); keeping %s",
                        key[0], key[1], existing.version, existing.origin, entry.version, entry.origin,
                        "first" if prefer_earlier else "last",
                    )
            merged = table.merged_under(merged, prefer_lower=prefer_earlier)
        return merged


def _relabel(table: ManagedVersions, origin: str) -> ManagedVersions:
    return ManagedVersions({
        key: replace(entry, origin=origin) if entry.origin == "local" else entry
        for key, entry in table.items()
    })


def _interpolate_dependency(dep: DeclaredDependency, properties: Dict[str, str]) -> DeclaredDependency:
    if not any(v and "${" in v for v in (dep.group, dep.artifact, dep.version, dep.scope)) and not any(
        "${" in rule.group or "${" in rule.artifact for rule in dep.exclusions
    ):
        return dep
    return replace(
        dep,
        group=interpolate(dep.group, properties) or dep.group,
        artifact=interpolate(dep.artifact, properties) or dep.artifact,
        version=interpolate(dep.version, properties),
        scope=interpolate(dep.scope, properties),
        exclusions=frozenset(
            ExclusionRule(
                interpolate(rule.group, properties) or rule.group,
                interpolate(rule.artifact, properties) or rule.artifact,
            )
            for rule in dep.exclusions
        ),
    )

"""Data models for manifests and module coordinates."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

from constants import Constants, Scopes

# Stable map key for "same module, any version" lookups: (group, artifact).
ModuleKey = Tuple[str, str]


def format_key(key: ModuleKey) -> str:
    """Render a module key as ``group:artifact``."""
    return f"{key[0]}:{key[1]}"


@dataclass(frozen=True)
class Coordinate:
    """Module identity: group, artifact name and (optionally) version.

    Equality includes the version, which makes a Coordinate usable as exact
    graph-node identity. Use ``key`` to compare modules regardless of version.
    """
    group: str
    artifact: str
    version: Optional[str] = None

    @property
    def key(self) -> ModuleKey:
        return (self.group, self.artifact)

    def same_module(self, other: "Coordinate") -> bool:
        return self.key == other.key

    @classmethod
    def parse(cls, token: str) -> "Coordinate":
        """Parse ``group:artifact[:version]``.

        Raises:
            ValueError: if the token does not have two or three parts.
        """
        parts = [p.strip() for p in token.strip().split(":")]
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(f"Invalid coordinate '{token}', expected group:artifact[:version]")
        return cls(parts[0], parts[1], parts[2] if len(parts) == 3 else None)

    def __str__(self) -> str:
        if self.version:
            return f"{self.group}:{self.artifact}:{self.version}"
        return f"{self.group}:{self.artifact}"


@dataclass(frozen=True, order=True)
class ExclusionRule:
    """(group, artifact) pattern; either field may be the ``*`` wildcard."""
    group: str
    artifact: str

    def matches(self, key: ModuleKey) -> bool:
        group, artifact = key
        return (self.group in (Constants.WILDCARD, group)) and (
            self.artifact in (Constants.WILDCARD, artifact)
        )

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}"


@dataclass(frozen=True)
class DeclaredDependency:  # pylint: disable=too-many-instance-attributes
    """A dependency as written in a manifest.

    ``version`` and ``scope`` are None when the manifest omits them, so the
    resolver can tell "unspecified" apart from an explicit default.
    """
    group: str
    artifact: str
    version: Optional[str] = None
    scope: Optional[str] = None
    exclusions: FrozenSet[ExclusionRule] = frozenset()
    optional: bool = False
    type: str = "jar"

    @property
    def key(self) -> ModuleKey:
        return (self.group, self.artifact)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.group, self.artifact, self.version)

    @property
    def is_bom_import(self) -> bool:
        return self.scope == Scopes.IMPORT.value and self.type == "pom"

    def __str__(self) -> str:
        return str(self.coordinate)


@dataclass(frozen=True)
class ManagedEntry:
    """A managed version (and optional scope) for one module.

    ``origin`` names where the entry came from: "local", "parent <coord>" or
    "bom <coord>".
    """
    version: str
    scope: Optional[str] = None
    origin: str = "local"


class ManagedVersions:
    """Module key -> ManagedEntry table with layered merge semantics."""

    def __init__(self, entries: Optional[Dict[ModuleKey, ManagedEntry]] = None):
        self._entries: Dict[ModuleKey, ManagedEntry] = dict(entries or {})

    def get(self, key: ModuleKey) -> Optional[ManagedEntry]:
        return self._entries.get(key)

    def merged_under(self, lower: "ManagedVersions", prefer_lower: bool = False) -> "ManagedVersions":
        """Return a new table where ``self`` overrides ``lower``.

        With ``prefer_lower`` the precedence is flipped for conflicting keys
        while ``self``'s ordering is preserved.
        """
        merged = dict(lower._entries)  # pylint: disable=protected-access
        for key, entry in self._entries.items():
            if prefer_lower and key in merged:
                continue
            merged[key] = entry
        return ManagedVersions(merged)

    def items(self) -> Iterator[Tuple[ModuleKey, ManagedEntry]]:
        return iter(self._entries.items())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ManagedVersions) and self._entries == other._entries

    def __repr__(self) -> str:
        return f"ManagedVersions({len(self._entries)} entries)"


@dataclass(frozen=True)
class Manifest:  # pylint: disable=too-many-instance-attributes
    """A module's declared dependencies, managed versions and imports.

    As returned by the parser the managed table holds local entries only and
    strings are not interpolated. The loader produces the effective form with
    properties substituted and parent/BOM tables merged in.
    """
    coordinate: Coordinate
    dependencies: Tuple[DeclaredDependency, ...] = ()
    managed: ManagedVersions = field(default_factory=ManagedVersions)
    bom_imports: Tuple[DeclaredDependency, ...] = ()
    parent: Optional[Coordinate] = None
    properties: Tuple[Tuple[str, str], ...] = ()
    packaging: str = "jar"
    source_name: str = "<memory>"
    effective: bool = False

    @property
    def key(self) -> ModuleKey:
        return self.coordinate.key

    def property_map(self) -> Dict[str, str]:
        return dict(self.properties)

    def dependency_keys(self) -> List[ModuleKey]:
        return [dep.key for dep in self.dependencies]

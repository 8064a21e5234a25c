"""Manifest model, parsers, repository sources and the effective-model loader."""

from .models import Coordinate, DeclaredDependency, ExclusionRule, ManagedEntry, ManagedVersions, Manifest
from .loader import ManifestLoader
from .sources import (
    ChainedSource,
    DeadlineSource,
    HttpRepositorySource,
    LocalRepositorySource,
    ManifestSource,
    MemorySource,
    build_source,
)

__all__ = [
    "Coordinate",
    "DeclaredDependency",
    "ExclusionRule",
    "ManagedEntry",
    "ManagedVersions",
    "Manifest",
    "ManifestLoader",
    "ManifestSource",
    "LocalRepositorySource",
    "HttpRepositorySource",
    "ChainedSource",
    "DeadlineSource",
    "MemorySource",
    "build_source",
]

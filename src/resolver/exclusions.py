"""Exclusion filtering applied while the graph is expanded."""
from __future__ import annotations

from typing import FrozenSet, Iterable, Optional

from manifest.models import ExclusionRule, ModuleKey

ExclusionSet = FrozenSet[ExclusionRule]

EMPTY: ExclusionSet = frozenset()


def inherit(parent: ExclusionSet, own: Iterable[ExclusionRule]) -> ExclusionSet:
    """Exclusion set of a child edge: everything the parent carried plus its own."""
    own = frozenset(own)
    if not own:
        return parent
    return parent | own


def matching_rule(exclusions: ExclusionSet, key: ModuleKey) -> Optional[ExclusionRule]:
    """First rule (in sorted order, for stable reporting) that matches the key."""
    for rule in sorted(exclusions):
        if rule.matches(key):
            return rule
    return None


def is_excluded(exclusions: ExclusionSet, key: ModuleKey) -> bool:
    return any(rule.matches(key) for rule in exclusions)

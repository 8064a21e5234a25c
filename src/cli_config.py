"""Configuration loading and CLI overrides for the resolver.

Precedence, lowest to highest: built-in defaults, config file, dedicated
CLI flags, ``--set KEY=VALUE``. Bad override values are logged and skipped
so a typo never breaks the CLI.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants
from resolver.config import ResolverConfig

logger = logging.getLogger(__name__)

_INT_FIELDS = {"max_workers", "http_retry_max"}
_FLOAT_FIELDS = {"deadline_seconds", "http_timeout"}
_LIST_FIELDS = {"repositories"}


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load the resolver section of a YAML/JSON config file.

    Args:
        config_path: Path to YAML/JSON config file.

    Returns:
        Resolver configuration dict; empty when the file is absent.
    """
    if not config_path:
        return {}

    if not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Config file could not be loaded (%s): %s", config_path, exc)
        return {}
    if isinstance(data, dict):
        # Extract resolver section if present
        section = data.get("resolver", data)
        return section if isinstance(section, dict) else {}
    return {}


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in _INT_FIELDS:
        return int(value)
    if name in _FLOAT_FIELDS:
        if isinstance(value, str) and value.strip().lower() in ("", "none", "null"):
            return None
        return float(value)
    if name in _LIST_FIELDS:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return [str(v) for v in value]
    return str(value)


def apply_mapping(config: ResolverConfig, values: Dict[str, Any], origin: str) -> ResolverConfig:
    """Apply known keys from ``values``; unknown or invalid ones are skipped."""
    known = set(ResolverConfig.field_names())
    for raw_key, value in values.items():
        name = str(raw_key).strip().replace("-", "_")
        if name not in known:
            logger.warning("Ignoring unknown %s setting '%s'", origin, raw_key)
            continue
        try:
            candidate = replace(config, **{name: _coerce(name, value)}).validate()
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid %s setting %s=%r: %s", origin, raw_key, value, exc)
            continue
        config = candidate
    return config


def parse_set_overrides(pairs: List[str]) -> Dict[str, str]:
    """Turn ``KEY=VALUE`` strings into a dict; malformed entries are skipped."""
    overrides: Dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            logger.warning("Ignoring --set value without '=': %s", pair)
            continue
        key, value = pair.split("=", 1)
        overrides[key.strip()] = value.strip()
    return overrides


def build_config(args) -> ResolverConfig:
    """Assemble the effective ResolverConfig from file and CLI arguments."""
    config = apply_mapping(ResolverConfig(), load_config_file(getattr(args, "CONFIG", None)), "config file")

    flags: Dict[str, Any] = {}
    if getattr(args, "REPOSITORIES", None):
        flags["repositories"] = list(args.REPOSITORIES)
    if getattr(args, "MAX_WORKERS", None) is not None:
        flags["max_workers"] = args.MAX_WORKERS
    if getattr(args, "DEADLINE", None) is not None:
        flags["deadline_seconds"] = args.DEADLINE
    if getattr(args, "EXCLUSION_SCOPE", None):
        flags["exclusion_scope"] = args.EXCLUSION_SCOPE
    if getattr(args, "BOM_CONFLICT_POLICY", None):
        flags["bom_conflict_policy"] = args.BOM_CONFLICT_POLICY
    config = apply_mapping(config, flags, "command line")
    config = apply_mapping(config, parse_set_overrides(getattr(args, "CONFIG_SET", [])), "--set")

    if getattr(args, "USE_CENTRAL", False) and Constants.REPOSITORY_URL_MAVEN_CENTRAL not in config.repositories:
        config = replace(config, repositories=config.repositories + [Constants.REPOSITORY_URL_MAVEN_CENTRAL])
    return config

"""
Configuration loading utilities.

A configuration file may reference environment variables as ``${VAR}`` or
``${VAR:default}`` anywhere in a string value, and inherits from a
``base.yaml`` placed next to it unless an explicit base is given.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from registerdata.config.settings import RegistryConfig

_ENV_REFERENCE = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


def _expand_env(value: Any) -> Any:
    """Expand environment references in every string of a parsed document."""
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) or ""), value
        )
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


def _overlay(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` on ``base``; nested sections merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _overlay(current, value)
        else:
            merged[key] = value
    return merged


def _normalize_sources(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Accept ``name: location`` shorthand next to full source mappings."""
    return {
        name: {"location": entry} if isinstance(entry, str) else entry
        for name, entry in (raw or {}).items()
    }


def load_yaml(path: Path) -> dict[str, Any]:
    """Read one YAML document with environment references expanded."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return _expand_env(data) if data else {}


def load_config(
    config_path: Path,
    base_path: Path | None = None,
) -> RegistryConfig:
    """
    Load library configuration from YAML file(s).

    Every section is optional. Sources may be given as a bare location
    string or as a mapping with ``location`` and ``key_column``.

    Args:
        config_path: Path to the main configuration file.
        base_path: Base configuration to inherit from. Defaults to a
            ``base.yaml`` sibling of ``config_path`` when one exists.

    Returns:
        Fully validated RegistryConfig instance.
    """
    if base_path is None:
        sibling = config_path.parent / "base.yaml"
        if sibling.exists() and sibling != config_path:
            base_path = sibling

    data = load_yaml(config_path)
    if base_path is not None:
        data = _overlay(load_yaml(base_path), data)

    data["sources"] = _normalize_sources(data.get("sources"))
    return RegistryConfig.model_validate(data)

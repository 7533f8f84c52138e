"""Configuration loading utilities.

Handles YAML config file loading, environment variable expansion,
and deep merging of command-line overrides.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any

import yaml

from tollgate.core.config.models import Config

_VAR_PATTERN = r'\$\{([^}]+)\}'


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} patterns in a string with environment variable values.

    Unknown variables are left unchanged so check_unexpanded_vars can report them.

    Examples:
        >>> os.environ['RELAY_HOST'] = 'relay.example.com'
        >>> expand_env_vars('wss://${RELAY_HOST}')
        'wss://relay.example.com'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return re.sub(_VAR_PATTERN, replacer, value)


def expand_env_vars_recursive(obj: Any) -> Any:
    """Recursively expand environment variables in nested dicts and lists."""
    if isinstance(obj, dict):
        return {key: expand_env_vars_recursive(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars_recursive(item) for item in obj]
    elif isinstance(obj, str):
        return expand_env_vars(obj)
    else:
        return obj


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep merge overrides over a base configuration.

    Examples:
        >>> merge_configs({'server': {'host': '0.0.0.0', 'port': 8001}}, {'server': {'port': 9000}})
        {'server': {'host': '0.0.0.0', 'port': 9000}}
    """
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def check_unexpanded_vars(data: Any, source: str) -> None:
    """Recursively check for unresolved ${VAR} patterns after expansion.

    Args:
        data: Expanded configuration data (dict, list, str, or other).
        source: Human-readable label for error messages (e.g., file path).

    Raises:
        ValueError: If any ${VAR} patterns remain unresolved.
    """
    unresolved: list[str] = []
    _collect_unexpanded_vars(data, unresolved)
    if unresolved:
        unique = sorted(set(unresolved))
        raise ValueError(
            f"Unresolved environment variable(s) in {source}: {', '.join(unique)}. "
            f"Set these variables or remove the ${{VAR}} references."
        )


def _collect_unexpanded_vars(obj: Any, found: list[str]) -> None:
    """Walk data structure collecting unresolved ${VAR} patterns."""
    if isinstance(obj, dict):
        for value in obj.values():
            _collect_unexpanded_vars(value, found)
    elif isinstance(obj, list):
        for item in obj:
            _collect_unexpanded_vars(item, found)
    elif isinstance(obj, str):
        for match in re.finditer(_VAR_PATTERN, obj):
            found.append(f"${{{match.group(1)}}}")


def load_config(path: Path | str, overrides: dict[str, Any] | None = None) -> Config:
    """Load configuration from a YAML file with environment variable expansion.

    Args:
        path: Path to the YAML configuration file.
        overrides: Optional nested dict merged over the file contents.

    Returns:
        Parsed Config object.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is malformed.
        ValueError: If a ${VAR} reference cannot be resolved.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    data = expand_env_vars_recursive(data)
    check_unexpanded_vars(data, source=str(config_path))

    if overrides:
        data = merge_configs(data, overrides)

    return Config(**data)

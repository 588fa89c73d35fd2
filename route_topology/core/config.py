"""
Configuration loading.

config/config.yaml is read with PyYAML after ``${VAR}`` / ``${VAR:default}``
substitution from the environment. Missing keys fall back to DEFAULT_CONFIG.
"""

import copy
import os
import re
from typing import Any, Dict, Optional

import yaml

from route_topology.ingestion.harvester import LINES_URL, STOPS_URL, TRACES_URL

DEFAULT_CONFIG_PATH = "config/config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    'application': {
        'name': 'IDFM Route Topology',
        'version': '1.0.0'
    },
    'sources': {
        'stops_url': STOPS_URL,
        'traces_url': TRACES_URL,
        'lines_url': LINES_URL,
        'stops_file': None,  # optional local GTFS stops.txt
        'timeout': 300,
        'retries': 3,
        'backoff_factor': 1.0
    },
    'output': {
        'directory': '.',
        'routes_file': 'optimized_routes.json',
        'lines_file': 'lines.json',
        'stops_file': 'stops.json'
    },
    'topology': {
        'route_id_prefix': 'IDFM:',
        'workers': 1
    },
    'logging': {
        'level': 'INFO'
    }
}

_ENV_PATTERN = re.compile(r'\$\{(\w+)(?::([^}]*))?\}')


def substitute_env(text: str) -> str:
    """Replace ${VAR} and ${VAR:default} with environment values."""
    def replace_env(match):
        var_name = match.group(1)
        default = match.group(2) if match.group(2) else ""
        return os.getenv(var_name, default)

    return _ENV_PATTERN.sub(replace_env, text)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration, layered over the defaults.

    Args:
        config_path: YAML file path. None or a missing file yields defaults.

    Returns:
        The merged configuration dictionary.

    Raises:
        ValueError: If the file does not contain a YAML mapping.
    """
    if not config_path or not os.path.exists(config_path):
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, 'r', encoding='utf-8') as f:
        loaded = yaml.safe_load(substitute_env(f.read())) or {}

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration file {config_path} is not a mapping")

    return _merge(DEFAULT_CONFIG, loaded)

"""Shared nodeflow configuration utilities.

Centralises reading of ~/.nodeflow/configuration.json so the executor,
multi-nodes and logging setup share one implementation.
"""

import json
from pathlib import Path
from typing import Any

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "auto"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

NODEFLOW_CONFIG_FILE = Path.home() / ".nodeflow" / "configuration.json"


def get_nodeflow_config() -> dict[str, Any]:
    """Load nodeflow configuration from ~/.nodeflow/configuration.json."""
    if not NODEFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(NODEFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def get_config_section(name: str) -> dict[str, Any]:
    """Return one top-level section of the config, or {} when absent or not an object."""
    section = get_nodeflow_config().get(name)
    return section if isinstance(section, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_max_parallelism() -> int | None:
    """Return the default Group fan-out limit, or None for unbounded."""
    value = get_config_section("engine").get("max_parallelism")
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def get_allow_partial_success() -> bool:
    """Return whether mixed child outcomes count as success-with-errors by default."""
    return bool(get_config_section("engine").get("allow_partial_success", True))


def get_log_level() -> str:
    return str(get_config_section("logging").get("level", DEFAULT_LOG_LEVEL))


def get_log_format() -> str:
    return str(get_config_section("logging").get("format", DEFAULT_LOG_FORMAT))


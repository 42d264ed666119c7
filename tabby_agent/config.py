"""
Agent configuration.

The config is a nested dict, treated as immutable: every successful
update replaces it with a new merged copy.

Defaults:
    {
        "server": {"endpoint": "http://localhost:8080"},
        "completion": {"max_prefix_lines": 20, "max_suffix_lines": 20},
        "logs": {"level": "silent"},
        "anonymous_usage_tracking": {"disable": False},
    }

Merge semantics: mappings merge recursively; any other value in the
partial config (lists included) replaces the current value wholesale.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from tabby_agent.errors import ConfigError
from tabby_agent.logger import LOG_LEVELS

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8080"
DEFAULT_MAX_PREFIX_LINES = 20
DEFAULT_MAX_SUFFIX_LINES = 20

Config = Dict[str, Any]


def default_config() -> Config:
    """Return a fresh copy of the default config."""
    return {
        "server": {"endpoint": DEFAULT_ENDPOINT},
        "completion": {
            "max_prefix_lines": DEFAULT_MAX_PREFIX_LINES,
            "max_suffix_lines": DEFAULT_MAX_SUFFIX_LINES,
        },
        "logs": {"level": "silent"},
        "anonymous_usage_tracking": {"disable": False},
    }


def deep_merge(base: Mapping[str, Any], partial: Mapping[str, Any]) -> Config:
    """
    Recursively merge partial into base without mutating either.

    Args:
        base: Current config
        partial: Values to override

    Returns:
        A new dict; nested mappings are merged key by key, every other
        value from partial replaces the base value.

    Example:
        >>> deep_merge({"a": {"b": 1, "c": [1]}}, {"a": {"c": [2]}})
        {'a': {'b': 1, 'c': [2]}}
    """
    merged: Config = copy.deepcopy(dict(base))
    for key, value in partial.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality of nested mappings and sequences."""
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    return type(a) is type(b) and a == b


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = config.get(name)
    if not isinstance(section, Mapping):
        raise ConfigError(f"{name} must be a mapping, got {section!r}")
    return section


def validate_config(config: Mapping[str, Any]) -> None:
    """
    Validate a complete config.

    Raises:
        ConfigError: If any section is not a mapping or any value is invalid
    """
    endpoint = _section(config, "server").get("endpoint")
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ConfigError(f"server.endpoint must be a non-empty string, got {endpoint!r}")

    level = _section(config, "logs").get("level")
    if not isinstance(level, str) or level not in LOG_LEVELS:
        raise ConfigError(
            f"logs.level must be one of {sorted(LOG_LEVELS)}, got {level!r}"
        )

    disable = _section(config, "anonymous_usage_tracking").get("disable")
    if not isinstance(disable, bool):
        raise ConfigError(
            f"anonymous_usage_tracking.disable must be a bool, got {disable!r}"
        )

    completion = _section(config, "completion")
    for key in ("max_prefix_lines", "max_suffix_lines"):
        value = completion.get(key)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(f"completion.{key} must be a positive integer, got {value!r}")


class ConfigStore:
    """
    Holds the current config and applies partial updates.

    Attributes:
        current: The current config (do not mutate)
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        config = default_config()
        if initial:
            config = deep_merge(config, initial)
        validate_config(config)
        self._config: Config = config

    @property
    def current(self) -> Config:
        return self._config

    def snapshot(self) -> Config:
        """Return a deep copy safe to hand out to callers."""
        return copy.deepcopy(self._config)

    def merge(self, partial: Mapping[str, Any]) -> bool:
        """
        Merge partial into the current config.

        Returns:
            True if the config changed, False if the merged result is
            deep-equal to the current config

        Raises:
            ConfigError: If the merged config is invalid; the current
                config is left unchanged
        """
        if not isinstance(partial, Mapping):
            raise ConfigError(f"Config update must be a mapping, got {partial!r}")
        merged = deep_merge(self._config, partial)
        if deep_equal(self._config, merged):
            return False
        validate_config(merged)
        self._config = merged
        logger.debug(f"Config replaced: {merged}")
        return True

    @property
    def endpoint(self) -> str:
        return self._config["server"]["endpoint"]

    @property
    def log_level(self) -> str:
        return self._config["logs"]["level"]

    @property
    def usage_tracking_disabled(self) -> bool:
        return self._config["anonymous_usage_tracking"]["disable"]

    @property
    def max_prefix_lines(self) -> int:
        return self._config["completion"]["max_prefix_lines"]

    @property
    def max_suffix_lines(self) -> int:
        return self._config["completion"]["max_suffix_lines"]

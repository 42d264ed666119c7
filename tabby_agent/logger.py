"""
Log sinks for tabby-agent.

All package modules log through the standard ``logging`` hierarchy under
the ``tabby_agent`` namespace. A LoggerRegistry is the explicit owner of
the sinks whose level the agent controls: the registry's root sink is the
``tabby_agent`` logger itself, so setting its level applies to every module
logger that has no level of its own.

Config level names:
    silent, error, warn, info, debug, trace
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Tuple

ROOT_LOGGER_NAME = "tabby_agent"

# Above CRITICAL, so nothing passes
SILENT = logging.CRITICAL + 10

LOG_LEVELS: Dict[str, int] = {
    "silent": SILENT,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def to_logging_level(level: str) -> int:
    """
    Convert a config level name to a ``logging`` level.

    Raises:
        ValueError: If the level name is unknown
    """
    try:
        return LOG_LEVELS[level]
    except KeyError:
        raise ValueError(
            f"Unknown log level '{level}', expected one of {sorted(LOG_LEVELS)}"
        ) from None


class LogSink(logging.LoggerAdapter):
    """
    A leveled logger with key/value bindings appended to every message.

    Attributes:
        level: Config level name; assigning it sets the underlying
            logger's level
    """

    def __init__(self, logger: logging.Logger, bindings: Optional[Mapping[str, Any]] = None):
        super().__init__(logger, dict(bindings or {}))
        self._level_name = "silent"

    @property
    def level(self) -> str:
        return self._level_name

    @level.setter
    def level(self, value: str) -> None:
        self.logger.setLevel(to_logging_level(value))
        self._level_name = value

    def set_bindings(self, bindings: Mapping[str, Any]) -> None:
        self.extra = {**self.extra, **bindings}

    @property
    def bindings(self) -> Dict[str, Any]:
        return dict(self.extra)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.extra:
            rendered = " ".join(f"{k}={v}" for k, v in self.extra.items())
            msg = f"[{rendered}] {msg}"
        return msg, kwargs


class LoggerRegistry:
    """
    Bounded set of log sinks, each independently leveled.

    Sinks only need a mutable ``level`` attribute; ``set_bindings`` is
    optional and skipped for sinks that do not provide it.

    Example:
        loggers = LoggerRegistry()
        loggers.set_level("debug")
        loggers.set_bindings({"client": "vim"})
    """

    def __init__(self, root: Optional[LogSink] = None) -> None:
        if root is None:
            root = LogSink(logging.getLogger(ROOT_LOGGER_NAME))
            root.level = "silent"
        self._root = root
        self._sinks: List[Any] = [root]

    @property
    def root(self) -> LogSink:
        return self._root

    def add(self, sink: Any) -> None:
        """Register an additional sink."""
        if sink not in self._sinks:
            self._sinks.append(sink)

    def child(self, component: str) -> LogSink:
        """Return a sink for a named component below the root logger."""
        return LogSink(self._root.logger.getChild(component), self._root.extra)

    def set_level(self, level: str) -> None:
        """Assign level to every registered sink."""
        to_logging_level(level)
        for sink in self._sinks:
            sink.level = level

    def set_bindings(self, bindings: Mapping[str, Any]) -> None:
        """Apply bindings to every sink that supports them."""
        for sink in self._sinks:
            set_bindings = getattr(sink, "set_bindings", None)
            if set_bindings is not None:
                set_bindings(bindings)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._sinks))

    def __len__(self) -> int:
        return len(self._sinks)

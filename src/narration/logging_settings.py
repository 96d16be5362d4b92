"""Per-area log levels read from ``logging_settings.conf``.

The file holds ``key = value`` lines; a line starting with ``#`` is a
comment. ``terminal`` sets the console handler, ``narration`` the
``narration`` package loggers and ``http`` the httpx/httpcore loggers:

    terminal = info
    narration = debug
    http = warning
    log_file = logs/narration.log

Levels are ``debug``, ``info``, ``warning`` (or ``warn``), ``error``,
``critical`` and ``off``. A missing file means defaults everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

_LEVELS: dict[str, Optional[int]] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": None,
}

_AREAS = ("terminal", "narration", "http")


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: Optional[int] = logging.INFO
    narration_level: Optional[int] = logging.INFO
    # httpx logs every request at INFO
    http_level: Optional[int] = logging.WARNING
    log_file: Optional[Path] = None


def _entries(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    for raw_line in lines:
        line = raw_line.strip()
        if line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep:
            yield key.strip().lower(), value.strip()


def _level(name: str) -> Optional[int]:
    return _LEVELS.get(name.lower(), logging.INFO)


def parse_logging_settings(path: Path) -> LoggingSettings:
    """Read ``path`` into LoggingSettings; unknown keys and levels are ignored."""
    if not path.exists():
        return LoggingSettings()

    values: dict[str, Any] = {}
    for key, value in _entries(path.read_text(encoding="utf-8").splitlines()):
        if key == "log_file":
            values["log_file"] = Path(value) if value else None
        elif key in _AREAS:
            values[f"{key}_level"] = _level(value)

    return LoggingSettings(**values)


__all__ = ["LoggingSettings", "parse_logging_settings"]

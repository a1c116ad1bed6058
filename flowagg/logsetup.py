"""Log level parsing and structured log output in text or JSON form."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime

_SLOG_LEVELS = {"DEBUG": -4, "INFO": 0, "WARN": 4, "ERROR": 8}
_OFFSET = re.compile(r"[+-][0-9]+")


class LogLevelError(ValueError):
    """A log level string could not be understood."""


def parse_log_level(text):
    """Parse a name such as ``info`` or ``warn+2`` into a logging level number."""
    name, offset = text, 0
    index = next((i for i, char in enumerate(text) if char in "+-"), None)
    if index is not None:
        name, suffix = text[:index], text[index:]
        if not _OFFSET.fullmatch(suffix):
            raise LogLevelError(f'level string "{text}": invalid offset')
        offset = int(suffix)
    base = _SLOG_LEVELS.get(name.upper())
    if base is None:
        raise LogLevelError(f'level string "{text}": unknown name')
    return logging.INFO + ((base + offset) * 5) // 2


def _level_name(levelno):
    level = round((levelno - logging.INFO) * 0.4)
    for name, base in (("ERROR", 8), ("WARN", 4), ("INFO", 0)):
        if level >= base:
            break
    else:
        name, base = "DEBUG", -4
    delta = level - base
    return name if delta == 0 else f"{name}{delta:+d}"


def _timestamp(created):
    text = datetime.fromtimestamp(created).astimezone().isoformat(timespec="milliseconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _attributes(record):
    attrs = getattr(record, "attrs", None)
    return dict(attrs) if attrs else {}


def _quote(text):
    if text and not any(c in ' ="' or not c.isprintable() for c in text):
        return text
    return json.dumps(text, ensure_ascii=False)


class _TextFormatter(logging.Formatter):
    def format(self, record):
        parts = [
            f"time={_timestamp(record.created)}",
            f"level={_level_name(record.levelno)}",
            f"msg={_quote(record.getMessage())}",
        ]
        parts.extend(f"{key}={_quote(str(value))}" for key, value in _attributes(record).items())
        if record.exc_info:
            parts.append(f"exception={_quote(self.formatException(record.exc_info))}")
        return " ".join(parts)


class _JsonFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "time": _timestamp(record.created),
            "level": _level_name(record.levelno),
            "msg": record.getMessage(),
        }
        entry.update(_attributes(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level, fmt="normal", stream=None):
    """Send root logging to ``stream`` as key=value text, or JSON when fmt is "json".

    Extra fields come from ``extra={"attrs": {...}}`` on a log call.
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(_JsonFormatter() if fmt == "json" else _TextFormatter())
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    return root
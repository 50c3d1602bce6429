"""Structured event log used by the pipeline.

The pipeline never owns log storage or transport. It emits events through an
object exposing ``log(level, message, context)``; the default implementation
forwards to the stdlib ``logging`` module.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class EventLog(Protocol):
    def log(self, level: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        ...


def level_number(level: str) -> int:
    try:
        return _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None


def format_context(context: Optional[Dict[str, Any]]) -> str:
    if not context:
        return ""
    return " ".join(f"{key}={context[key]!r}" for key in sorted(context))


class LoggingEventLog:
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("sado_poi")

    def log(self, level: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        levelno = level_number(level)
        if not self.logger.isEnabledFor(levelno):
            return
        ctx = dict(context or {})
        rendered = format_context(ctx)
        if rendered:
            self.logger.log(levelno, "%s %s", message, rendered, extra={"context": ctx})
        else:
            self.logger.log(levelno, "%s", message, extra={"context": ctx})


def default_event_log() -> LoggingEventLog:
    return LoggingEventLog()

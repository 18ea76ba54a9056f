"""structlog setup: one JSON object per line with ``ts``, ``level``, ``event`` and ``msg``."""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any, Mapping, MutableMapping, cast

import structlog

REDACTED = "[REDACTED]"

# credentials, plus personal identifiers carried on citizen and worker rows
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "database_url",
        "dsn",
        "curp",
        "clave_electoral",
        "numero_cel",
    }
)

_configured = False


def _scrub(key: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            inner_key: _scrub(inner_key, inner)
            for inner_key, inner in cast(Mapping[str, Any], value).items()
        }
    if isinstance(value, list):
        return [_scrub(key, item) for item in cast(list[Any], value)]
    return REDACTED if key.lower() in SENSITIVE_KEYS else value


def redact_sensitive(
    _: Any, __: str, event_dict: MutableMapping[str, Any]
) -> Mapping[str, Any]:
    return {key: _scrub(key, value) for key, value in event_dict.items()}


def copy_event_to_msg(
    _: Any, __: str, event_dict: MutableMapping[str, Any]
) -> Mapping[str, Any]:
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict.setdefault("msg", event)
    return event_dict


def configure_logging(level: str | None = None, *, stream: IO[str] | None = None) -> None:
    """Route stdlib logging and structlog to ``stream`` (stderr by default).

    ``level`` falls back to ``LOG_LEVEL`` and then ``INFO``. Calling it again
    replaces the previous handler.
    """
    global _configured

    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(message)s",
        stream=stream if stream is not None else sys.stderr,
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            copy_event_to_msg,
            redact_sensitive,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def is_configured() -> bool:
    return _configured


__all__ = ["SENSITIVE_KEYS", "configure_logging", "is_configured"]

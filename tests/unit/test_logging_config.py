"""Unit tests for JSON logging configuration and value redaction (logs go to stderr)."""

from __future__ import annotations

import io
import json
from typing import Any

import pytest
import structlog

from src.infra.logging.config import configure_logging, is_configured


def _lines(out: str) -> list[dict[str, Any]]:
    return [json.loads(line) for line in out.strip().splitlines() if line.strip()]


@pytest.mark.unit
def test_configure_logging_emits_json_lines(capsys: Any) -> None:
    configure_logging(level="INFO")
    logger = structlog.get_logger("test.hierarchy")

    logger.info("hierarchy.tree.built", roots=3)
    (payload,) = _lines(capsys.readouterr().err)

    assert payload["event"] == "hierarchy.tree.built"
    assert payload["msg"] == payload["event"]
    assert payload["level"] == "info"
    assert payload["roots"] == 3
    assert "ts" in payload
    assert is_configured() is True


@pytest.mark.unit
def test_citizen_identifiers_are_redacted(capsys: Any) -> None:
    configure_logging(level="INFO")
    logger = structlog.get_logger("test.masking")

    curp = "HEGL800101MJCRRC09"
    logger.info(
        "test.masking.record",
        record={"curp": curp, "numero_cel": "3312345678", "entidad": "Jalisco"},
        clave_electoral="HRLUCI80010114M700",
    )

    out = capsys.readouterr().err
    (payload,) = _lines(out)

    assert payload["record"]["curp"] == "[REDACTED]"
    assert payload["record"]["numero_cel"] == "[REDACTED]"
    assert payload["record"]["entidad"] == "Jalisco"
    assert payload["clave_electoral"] == "[REDACTED]"
    assert curp not in out


@pytest.mark.unit
def test_credentials_are_redacted(capsys: Any) -> None:
    configure_logging(level="INFO")
    logger = structlog.get_logger("test.masking")

    dsn = "postgresql://analytics:hunter2@db/campaign"
    logger.info("test.masking.credentials", dsn=dsn, password="hunter2", items=[{"token": "t"}])

    out = capsys.readouterr().err
    (payload,) = _lines(out)

    assert payload["dsn"] == "[REDACTED]"
    assert payload["password"] == "[REDACTED]"
    assert payload["items"] == [{"token": "[REDACTED]"}]
    assert "hunter2" not in out


@pytest.mark.unit
def test_level_filters_lower_events(capsys: Any) -> None:
    configure_logging(level="ERROR")
    logger = structlog.get_logger("test.level")

    logger.info("test.level.info")
    logger.error("test.level.error")

    events = [payload["event"] for payload in _lines(capsys.readouterr().err)]
    assert events == ["test.level.error"]


@pytest.mark.unit
def test_level_defaults_to_log_level_env(capsys: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    configure_logging()
    logger = structlog.get_logger("test.env")

    logger.info("test.env.info")
    logger.warning("test.env.warning")

    events = [payload["event"] for payload in _lines(capsys.readouterr().err)]
    assert events == ["test.env.warning"]


@pytest.mark.unit
def test_explicit_stream_receives_lines() -> None:
    buffer = io.StringIO()
    configure_logging(level="INFO", stream=buffer)

    structlog.get_logger("test.stream").info("analytics.cache.cleared", cache="hierarchy")

    (payload,) = _lines(buffer.getvalue())
    assert payload["cache"] == "hierarchy"

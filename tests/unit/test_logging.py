"""Unit tests for the structlog setup."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from powgate.config.logging import resolve_level, setup_logging


@pytest.fixture()
def restore_logging():
    yield
    structlog.reset_defaults()
    logging.basicConfig(force=True)
    for name in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.mark.unit
class TestSetupLogging:
    def test_json_lines_carry_service(self, restore_logging) -> None:
        out = io.StringIO()
        setup_logging("INFO", json_output=True, service="powgate-reaper", stream=out)

        structlog.get_logger("powgate.test").info("reaper_swept", challenges=3)

        line = json.loads(out.getvalue().strip())
        assert line["event"] == "reaper_swept"
        assert line["challenges"] == 3
        assert line["service"] == "powgate-reaper"
        assert line["level"] == "info"
        assert line["timestamp"].endswith("Z")

    def test_level_filters_events(self, restore_logging) -> None:
        out = io.StringIO()
        setup_logging("WARNING", json_output=True, stream=out)

        logger = structlog.get_logger("powgate.test.filtered")
        logger.info("challenge_issued")
        logger.warning("rate_limited")

        events = [json.loads(raw)["event"] for raw in out.getvalue().splitlines()]
        assert events == ["rate_limited"]

    def test_quiets_access_log(self, restore_logging) -> None:
        setup_logging("DEBUG", stream=io.StringIO())
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


@pytest.mark.unit
class TestResolveLevel:
    @pytest.mark.parametrize(
        ("name", "level"),
        [("debug", logging.DEBUG), ("ERROR", logging.ERROR), ("chatty", logging.INFO)],
    )
    def test_names(self, name: str, level: int) -> None:
        assert resolve_level(name) == level

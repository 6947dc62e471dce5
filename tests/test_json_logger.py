from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from visit_helper.json_logger import JsonLogger, mask_value, timed_event


def test_events_carry_run_id_and_bound_context(json_logger, events) -> None:
    json_logger.bind(stage="session").info(phase="session", message="state -> ready")

    event = events()[0]
    assert event["run_id"] == "test-run"
    assert event["stage"] == "session"
    assert event["status"] == "ok"
    assert "ts" in event


def test_identity_fields_are_masked(json_logger, events) -> None:
    json_logger.info(phase="submit", zjhm="110101199001011234", extras={"phone": "13900001111"})

    event = events()[0]
    assert event["zjhm"] == "11**************34"
    assert event["extras"]["phone"] == "13*******11"


def test_mask_value_short_values() -> None:
    assert mask_value("abc") == "***"


def test_timed_event_logs_failure_and_reraises(json_logger, events) -> None:
    with pytest.raises(ValueError):
        with timed_event(logger=json_logger, phase="submit", message="form submission"):
            raise ValueError("boom")

    event = events()[0]
    assert event["status"] == "error"
    assert event["message"] == "form submission failed: boom"
    assert "duration_ms" in event


def test_file_sink_and_close(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "visit.jsonl"
    logger = JsonLogger(run_id="r1", stream=io.StringIO(), log_file_path=str(log_file))

    logger.info(phase="run", message="started")
    logger.close()
    logger.info(phase="run", message="ignored after close")

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["message"] == "started"

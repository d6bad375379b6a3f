import json
import logging

import pytest

from pit.pit_logging import JsonFormatter, log_operation, setup_logging


def test_json_formatter_basic():
    record = logging.getLogger("pit.test").makeRecord(
        "pit.test", logging.INFO, __file__, 1, "hello %s", ("world",), None
    )
    data = json.loads(JsonFormatter().format(record))
    assert data["level"] == "INFO"
    assert data["message"] == "hello world"
    assert data["logger"] == "pit.test"
    assert data["operation"] is None
    assert data["task_id"] is None
    assert "details" not in data


def test_setup_logging_file_handler(tmp_path):
    log_file = tmp_path / "pit.log"
    logger = setup_logging("WARNING", log_file)
    logging.getLogger("pit.service").debug("recomputed")
    for handler in logger.handlers:
        handler.flush()
    lines = log_file.read_text().splitlines()
    assert json.loads(lines[-1])["message"] == "recomputed"
    setup_logging("WARNING")


def test_operation_entries_carry_record_ids(tmp_path):
    log_file = tmp_path / "pit.log"
    logger = setup_logging("WARNING", log_file)
    with pytest.raises(KeyError):
        with log_operation("set_status", project_id="p1", task_id="t1", status="completed"):
            raise KeyError("t1")
    for handler in logger.handlers:
        handler.flush()
    entry = json.loads(log_file.read_text().splitlines()[-1])
    assert entry["level"] == "WARNING"
    assert entry["operation"] == "set_status"
    assert (entry["project_id"], entry["issue_id"], entry["task_id"]) == ("p1", None, "t1")
    assert entry["details"] == {"outcome": "failed", "error_type": "KeyError", "status": "completed"}
    setup_logging("WARNING")


def test_log_operation_reports_failure(caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("pit"), "propagate", True)
    caplog.set_level(logging.INFO, logger="pit")
    with log_operation("update_task", task_id="t1"):
        pass
    with pytest.raises(ValueError):
        with log_operation("update_task", task_id="t1"):
            raise ValueError("boom")
    messages = [r.getMessage() for r in caplog.records]
    assert any("completed" in m for m in messages)
    assert any("failed: boom" in m for m in messages)

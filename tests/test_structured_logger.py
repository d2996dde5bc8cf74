"""Tests for utils/structured_logger.py."""

import json
import logging

from unit_storage.utils.structured_logger import (
    StructuredLogger,
    TierEventLogger,
    create_structured_logger,
)


def test_json_records_written_per_event(tmp_path):
    base, events = create_structured_logger(log_dir=tmp_path, enable_json=True)
    events.hit("members.json", "local", 1.234)
    events.write_failed("members.json", "cloud", "boom", advisory=True)
    base.close()

    (log_file,) = tmp_path.glob("*.jsonl")
    records = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert [r["event"] for r in records] == ["tier_hit", "write_failed"]
    assert records[0]["ms"] == 1.23
    assert records[1]["level"] == "warning"
    assert records[0]["run"] == records[1]["run"]


def test_without_log_dir_nothing_is_written(tmp_path, caplog):
    base = StructuredLogger("unit_storage.test", log_dir=None)
    assert not base.writes_json
    with caplog.at_level(logging.INFO, logger="unit_storage.test"):
        TierEventLogger(base).logger.info("ping", key="k")
    assert "ping key=k" in caplog.text
    base.close()
    assert list(tmp_path.iterdir()) == []


def test_bound_fields_reach_json(tmp_path):
    base = StructuredLogger("unit_storage.test", log_dir=tmp_path)
    base.bind(host="alpha")
    base.error("failed", key="k")
    base.close()
    (log_file,) = tmp_path.glob("*.jsonl")
    record = json.loads(log_file.read_text())
    assert record["host"] == "alpha"
    assert record["level"] == "error"

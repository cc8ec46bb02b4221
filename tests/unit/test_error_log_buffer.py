from __future__ import annotations
import json
from pathlib import Path
from mileage_import.logging.error_log import ErrorLogBuffer, ErrorRecord

SCHEMA_KEYS = {"timestamp", "user_id", "error_type", "error_message", "context"}


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(
        "u1",
        "daily_route_calculation",
        "Google Directions API error: NOT_FOUND",
        {"date": "2023-01-02", "entriesCount": 3},
    )
    data = json.loads(rec.to_json_line())
    assert data["user_id"] == "u1"
    assert data["error_type"] == "daily_route_calculation"
    assert data["context"] == {"date": "2023-01-02", "entriesCount": 3}
    assert data["timestamp"].endswith("Z")
    assert set(data.keys()) == SCHEMA_KEYS


def test_error_record_keeps_non_ascii():
    line = ErrorRecord.create("u1", "invalid_date", "日付が不正", {"value": "来週"}).to_json_line()
    assert "日付が不正" in line


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("u1", "invalid_date", "missing date: ''", {"row": 1}))
    buf.append(ErrorRecord.create("u1", "daily_route_calculation", "boom", {"date": "2023-01-01"}))
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent.name == "logs"
    assert path.name.startswith("errors-")
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw).keys()) == SCHEMA_KEYS
    # flush 後バッファクリア
    assert len(buf) == 0


def test_error_log_buffer_empty_flush_creates_no_file(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()

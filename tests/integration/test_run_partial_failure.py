from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from mileage_import.cli.__main__ import main as cli_main
from mileage_import.db.store import InMemoryStore
from mileage_import.excel.reader import compute_file_hash
from mileage_import.logging.init import reset_logging
from mileage_import.models.schedule_entry import ProcessingStatus

"""End-to-end: one day's provider call fails at the transport level; other days survive."""


def _get(url, params=None, timeout=None):
    if params["destination"] == "Unreachable Rd":
        raise requests.Timeout("read timed out")
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = {
        "status": "OK",
        "routes": [{"legs": [{"distance": {"value": 1609.34}, "duration": {"value": 60}}]}],
    }
    return resp


def test_partial_failure_records_error_entry_and_log(write_config, temp_workdir: Path, clean_env, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    csv = temp_workdir / "data" / "week.csv"
    csv.write_text(
        "Date,Address,Notes\n"
        "01/02/2023,Stop 1,\n"
        "01/03/2023,Unreachable Rd,\n"
        "not-a-date,Stop X,\n"
        "01/04/2023,Stop 3,\n",
        encoding="utf-8",
    )
    session = MagicMock()
    session.get.side_effect = _get
    store = InMemoryStore()
    with patch("mileage_import.services.routing.requests.Session", return_value=session), \
         patch("mileage_import.cli.__main__.InMemoryStore", return_value=store):
        code = cli_main([str(csv), "--user-id", "bob"])
    out = capsys.readouterr().out

    assert code == 2
    assert "failed=1" in out
    assert "invalid_rows=1" in out
    statuses = {str(e.date): e.processing_status for e in store.list_entries("bob")}
    assert statuses == {
        "2023-01-02": ProcessingStatus.CALCULATED,
        "2023-01-03": ProcessingStatus.ERROR,
        "2023-01-04": ProcessingStatus.CALCULATED,
    }
    failed = store.list_entries("bob")[1]
    assert "Failed to calculate route" in failed.error_message

    log_files = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(log_files) == 1
    records = [json.loads(line) for line in log_files[0].read_text(encoding="utf-8").splitlines()]
    assert [r["error_type"] for r in records] == ["invalid_date", "daily_route_calculation"]
    assert records[1]["context"] == {"date": "2023-01-03", "entriesCount": 1}

    # 失敗日も processed_files の件数に含まれる
    receipt = store.get_processed_file("bob", compute_file_hash(csv.read_bytes()))
    assert receipt.record_count == 3
    assert receipt.file_name == "week.csv"

from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from mileage_import.cli.__main__ import main as cli_main
from mileage_import.db.store import InMemoryStore
from mileage_import.logging.init import reset_logging
from mileage_import.models.schedule_entry import ProcessingStatus

"""End-to-end: xlsx file -> CLI -> real Google provider client (HTTP mocked) -> store."""

LEG_METERS = {
    ("HQ", "Acme Corp"): 16093.4,  # 10 mi
    ("Acme Corp", "Harbor Hotel"): 8046.7,  # 5 mi
    ("Harbor Hotel", "Beta LLC"): 3218.68,  # 2 mi
    ("Beta LLC", "HQ"): 32186.8,  # 20 mi
}


def _directions_response(url, params=None, timeout=None):
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    meters = LEG_METERS.get((params["origin"], params["destination"]))
    if meters is None:
        resp.json.return_value = {"status": "NOT_FOUND", "routes": []}
    else:
        resp.json.return_value = {
            "status": "OK",
            "routes": [
                {
                    "legs": [
                        {
                            "distance": {"value": meters},
                            "duration": {"value": 600},
                            "start_address": params["origin"],
                            "end_address": params["destination"],
                        }
                    ]
                }
            ],
        }
    return resp


@pytest.fixture()
def http_session():
    session = MagicMock()
    session.get.side_effect = _directions_response
    with patch("mileage_import.services.routing.requests.Session", return_value=session):
        yield session


def _write_xlsx(path: Path, rows: list[dict]) -> None:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Schedule", index=False)
    path.write_bytes(buf.getvalue())


def test_xlsx_import_with_serial_dates_and_hotel_carry_over(
    write_config, temp_workdir: Path, clean_env, monkeypatch, http_session, capsys
):
    reset_logging()
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    xlsx = temp_workdir / "data" / "trip.xlsx"
    _write_xlsx(
        xlsx,
        [
            {"Trip Date": 44927, "Starting Location": "Acme Corp", "Comments": "kickoff"},
            {"Trip Date": 44927, "Starting Location": "Harbor Hotel", "Comments": "Hotel stay"},
            {"Trip Date": 44928, "Starting Location": "Beta LLC", "Comments": None},
        ],
    )
    store = InMemoryStore()
    with patch("mileage_import.cli.__main__.InMemoryStore", return_value=store):
        code = cli_main([str(xlsx), "--user-id", "alice"])
    out = capsys.readouterr().out

    assert code == 0
    assert "SUMMARY days=2 calculated=2 failed=0" in out
    day1, day2 = store.list_entries("alice")
    assert str(day1.date) == "2023-01-01"
    assert day1.calculated_distance == pytest.approx(15.0)
    assert day1.is_hotel_stay is True
    assert day1.notes == "Daily route: Acme Corp → Harbor Hotel (Hotel stay)"
    assert day2.start_address == "Harbor Hotel"
    assert day2.calculated_distance == pytest.approx(22.0)
    assert day2.calculated_amount == pytest.approx(11.0)
    assert all(e.processing_status is ProcessingStatus.CALCULATED for e in (day1, day2))

    usage = store.list_api_usage("alice")
    assert usage[0].call_count == 4 == http_session.get.call_count
    for call in http_session.get.call_args_list:
        assert call.kwargs["params"]["key"] == "test-key"
        assert call.kwargs["timeout"] == 5.0

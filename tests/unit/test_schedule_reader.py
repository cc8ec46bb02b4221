from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest

from mileage_import.excel.reader import (
    UnsupportedFormatError,
    compute_file_hash,
    parse_schedule_file,
    read_schedule_path,
)


def test_csv_with_quoted_fields_and_blank_lines():
    data = (
        b'Date,Address,Notes\n'
        b'2023-01-01,"1 Main St, Springfield",  first visit \n'
        b'\n'
        b'2023-01-02,"2 Elm St, Shelbyville",\n'
    )
    rows = parse_schedule_file(data, "schedule.CSV")
    assert rows == [
        {"Date": "2023-01-01", "Address": "1 Main St, Springfield", "Notes": "first visit"},
        {"Date": "2023-01-02", "Address": "2 Elm St, Shelbyville", "Notes": ""},
    ]


def test_csv_utf8_bom_header():
    rows = parse_schedule_file("\ufeffDate,Address\n2023-01-01,A\n".encode("utf-8"), "s.csv")
    assert list(rows[0]) == ["Date", "Address"]


def test_txt_tab_delimited():
    rows = parse_schedule_file(b"Date\tAddress\n2023-01-01\t1 Main St, Springfield\n", "s.txt")
    assert rows == [{"Date": "2023-01-01", "Address": "1 Main St, Springfield"}]


def test_txt_comma_delimited_when_no_tab():
    rows = parse_schedule_file(b"Date,Address\n2023-01-01,A\n", "s.txt")
    assert rows == [{"Date": "2023-01-01", "Address": "A"}]


def test_xlsx_first_sheet_keeps_cell_types():
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(
            {
                "Date": [44927, datetime(2023, 1, 2)],
                "Address": ["A", None],
            }
        ).to_excel(writer, sheet_name="Trips", index=False)
        pd.DataFrame({"Ignored": ["x"]}).to_excel(writer, sheet_name="Other", index=False)

    rows = parse_schedule_file(buf.getvalue(), "trips.xlsx")

    assert len(rows) == 2
    assert set(rows[0]) == {"Date", "Address"}
    assert rows[0]["Address"] == "A"
    assert rows[1]["Address"] is None


def test_empty_file_returns_no_rows():
    assert parse_schedule_file(b"", "s.csv") == []


def test_unsupported_extension():
    with pytest.raises(UnsupportedFormatError, match=".pdf"):
        parse_schedule_file(b"%PDF", "s.pdf")


def test_file_hash_is_sha256_of_bytes():
    assert compute_file_hash(b"abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert compute_file_hash(b"abc") != compute_file_hash(b"abd")


def test_read_schedule_path(temp_workdir: Path):
    p = temp_workdir / "data" / "s.csv"
    p.write_bytes(b"Date,Address\n2023-01-01,A\n")
    data, rows = read_schedule_path(p)
    assert data == p.read_bytes()
    assert rows == [{"Date": "2023-01-01", "Address": "A"}]

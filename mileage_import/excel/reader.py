from __future__ import annotations

import hashlib
import io
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.row_data import RawRow

"""Schedule file parser.

Dispatches on file extension:
- .csv         comma separated, quoted fields, first line is the header
- .xlsx / .xls first sheet, first row is the header
- .txt         delimiter sniffed from the header line (tab if present, else comma)

Text formats keep every cell as a stripped string ("" when missing).
Serial dates therefore only come from spreadsheets: a serial exported to CSV
("44927") stays a string and is rejected as an unparseable date.
Spreadsheets keep cell types: numbers (serial dates included) stay numeric,
date-formatted cells arrive as datetimes, empty cells become None.
"""

__all__ = [
    "UnsupportedFormatError",
    "SUPPORTED_EXTENSIONS",
    "compute_file_hash",
    "parse_schedule_file",
    "read_schedule_path",
]

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls", ".txt")


class UnsupportedFormatError(Exception):
    """Raised when the file extension is not one of SUPPORTED_EXTENSIONS."""


def compute_file_hash(file_bytes: bytes) -> str:
    """SHA-256 hex digest of the raw upload, used by the duplicate-file gate."""
    return hashlib.sha256(file_bytes).hexdigest()


def _native(value: Any) -> Any:
    # numpy スカラ -> Python スカラ
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            return value.item()
        except (ValueError, AttributeError):
            return value
    return value


def _text_rows(df: pd.DataFrame) -> list[RawRow]:
    columns = [str(c).strip() for c in df.columns]
    rows: list[RawRow] = []
    for raw in df.itertuples(index=False, name=None):
        values = ["" if v is None or (isinstance(v, float) and pd.isna(v)) else str(v).strip() for v in raw]
        if not any(values):
            continue
        rows.append(dict(zip(columns, values, strict=False)))
    return rows


def _sheet_rows(df: pd.DataFrame) -> list[RawRow]:
    columns = [str(c).strip() for c in df.columns]
    rows: list[RawRow] = []
    for _, raw in df.iterrows():
        # 全セル空の行はスキップ
        if raw.isna().all():
            continue
        row: RawRow = {}
        for col, val in zip(columns, raw.tolist(), strict=False):
            if pd.isna(val):
                row[col] = None
            elif isinstance(val, pd.Timestamp):
                row[col] = val.to_pydatetime()
            elif isinstance(val, str):
                row[col] = val.strip()
            else:
                row[col] = _native(val)
        rows.append(row)
    return rows


def _read_delimited(file_bytes: bytes, sep: str) -> pd.DataFrame:
    return pd.read_csv(
        io.BytesIO(file_bytes),
        sep=sep,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        skipinitialspace=True,
        encoding="utf-8-sig",
    )


def _sniff_txt_delimiter(file_bytes: bytes) -> str:
    text = file_bytes.decode("utf-8-sig", errors="replace")
    for line in text.splitlines():
        if line.strip():
            return "\t" if "\t" in line else ","
    return ","


def parse_schedule_file(file_bytes: bytes, file_name: str) -> list[RawRow]:
    """Parse uploaded schedule bytes into RawRows.

    Raises:
        UnsupportedFormatError: extension is not csv/xlsx/xls/txt
    """
    ext = Path(file_name).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"unsupported file format: {ext or file_name}")
    if not file_bytes.strip():
        return []

    if ext == ".csv":
        return _text_rows(_read_delimited(file_bytes, ","))
    if ext == ".txt":
        return _text_rows(_read_delimited(file_bytes, _sniff_txt_delimiter(file_bytes)))

    # .xlsx / .xls: 先頭シートのみ
    df = pd.read_excel(io.BytesIO(file_bytes), sheet_name=0)
    return _sheet_rows(df)


def read_schedule_path(path: Path) -> tuple[bytes, list[RawRow]]:
    """Read a schedule file from disk, returning its bytes and parsed rows."""
    data = path.read_bytes()
    return data, parse_schedule_file(data, path.name)

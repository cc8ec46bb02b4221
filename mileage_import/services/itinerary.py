from __future__ import annotations

import logging
import math
import numbers
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from ..models.header_mapping import HeaderMapping
from ..models.itinerary import DailyItinerary, Stop
from ..models.row_data import CellValue, RawRow

"""Daily itinerary builder.

Groups RawRows by calendar date and turns each group into an ordered stop
list with hotel-stay detection.

Spreadsheet serial dates are decoded as 1899-12-31 + (serial - 1) days. This
reproduces the 1900 leap-year quirk of spreadsheet serials (44927 ->
2023-01-01); stored entries were produced under this convention, so it must
not be "corrected".
"""

__all__ = [
    "HOTEL_KEYWORDS",
    "InvalidRow",
    "build_itineraries",
    "decode_schedule_date",
    "detect_hotel_stay",
    "partition_rows_by_date",
]

logger = logging.getLogger(__name__)

SERIAL_EPOCH = date(1899, 12, 31)

# 数字のみのスラッシュ区切りは常に月/日/年として解釈する
_SLASH_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
SLASH_DATE_FORMAT = "%m/%d/%Y"

HOTEL_KEYWORDS = (
    "hotel",
    "motel",
    "inn",
    "lodge",
    "resort",
    "stay",
    "overnight",
    "lodging",
    "accommodation",
)


@dataclass(frozen=True)
class InvalidRow:
    """A row rejected before grouping because its date cell is unusable."""
    index: int  # 0-based position in the input rows
    raw_value: Any
    reason: str
    row: RawRow


def decode_schedule_date(value: CellValue) -> date | None:
    """Resolve a date cell to a calendar date, or None when it is unusable.

    - int / float: spreadsheet serial date (fractional time of day dropped)
    - datetime / date / pandas Timestamp: calendar date part
    - str: "M/D/YYYY" is always month-first (a day-first value such as
      "13/01/2023" is rejected, not reinterpreted); other shapes go through
      pandas.to_datetime. Digit-only strings are not treated as serials.
    """
    if value is None or value is pd.NaT or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, numbers.Real):
        if not math.isfinite(value):
            return None
        try:
            return SERIAL_EPOCH + timedelta(days=math.floor(value) - 1)
        except OverflowError:
            return None
    text = str(value).strip()
    if not text:
        return None
    fmt = SLASH_DATE_FORMAT if _SLASH_DATE.match(text) else None
    try:
        parsed = pd.to_datetime(text, format=fmt)
    except (ValueError, OverflowError, TypeError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def detect_hotel_stay(notes: str | None) -> bool:
    """True when notes mention an overnight stay (case-insensitive)."""
    if not notes:
        return False
    lowered = notes.lower()
    return any(k in lowered for k in HOTEL_KEYWORDS)


def _cell_text(row: RawRow, column: str | None) -> str:
    if column is None:
        return ""
    value = row.get(column)
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def partition_rows_by_date(
    rows: Sequence[RawRow], mapping: HeaderMapping
) -> tuple[dict[date, list[RawRow]], list[InvalidRow]]:
    """Group rows by decoded calendar date, keeping original order per date.

    Rows whose date cell is missing or unparseable are returned separately
    rather than grouped. The returned dict is ordered by ascending date.
    """
    groups: dict[date, list[RawRow]] = {}
    invalid: list[InvalidRow] = []
    for idx, row in enumerate(rows):
        raw = row.get(mapping.date) if mapping.date is not None else None
        day = decode_schedule_date(raw)
        if day is None:
            reason = "missing date" if raw is None or str(raw).strip() == "" else "unparseable date"
            invalid.append(InvalidRow(index=idx, raw_value=raw, reason=reason, row=row))
            continue
        groups.setdefault(day, []).append(row)
    if invalid:
        logger.warning("rejected %d row(s) with missing/unparseable dates", len(invalid))
    return {d: groups[d] for d in sorted(groups)}, invalid


def build_day(day: date, rows: Iterable[RawRow], mapping: HeaderMapping) -> DailyItinerary:
    """Build one day's itinerary from its rows (already in original order)."""
    stops = [
        Stop(
            address=_cell_text(row, mapping.start_address),
            notes=_cell_text(row, mapping.notes),
            raw_row=row,
        )
        for row in rows
    ]
    for stop in stops:
        if detect_hotel_stay(stop.notes):
            return DailyItinerary(date=day, stops=stops, is_hotel_stay=True, hotel_address=stop.address)
    return DailyItinerary(date=day, stops=stops)


def build_itineraries(rows: Sequence[RawRow], mapping: HeaderMapping) -> dict[date, DailyItinerary]:
    """Group rows into per-date itineraries, ordered by ascending date.

    Rows with unusable dates are dropped here; use partition_rows_by_date()
    to inspect them.
    """
    groups, _ = partition_rows_by_date(rows, mapping)
    return {day: build_day(day, day_rows, mapping) for day, day_rows in groups.items()}

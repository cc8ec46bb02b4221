from __future__ import annotations

from datetime import date, datetime
from typing import Union

"""RawRow type for the schedule import tool.

A RawRow is one spreadsheet row keyed by its column name. Values keep the
scalar type the parser produced: text formats yield strings, spreadsheets may
yield numbers (serial dates included) and datetimes.
"""

__all__ = [
    "CellValue",
    "RawRow",
]

CellValue = Union[str, int, float, datetime, date, None]

RawRow = dict[str, CellValue]

from __future__ import annotations

from collections.abc import Sequence

from ..models.header_mapping import HeaderMapping
from ..models.row_data import RawRow

"""Header inference: map arbitrary column names to date/start/end/notes.

Column names are taken from the first row and tested, lower-cased, in
priority order. The first column matching a field wins; later matches for an
already-filled field are ignored.
"""

__all__ = [
    "detect_headers",
]

_ADDRESS_WORDS = ("address", "location")


def _has_any(text: str, words: Sequence[str]) -> bool:
    return any(w in text for w in words)


def _is_date(h: str) -> bool:
    return "date" in h or "day" in h


def _is_start(h: str) -> bool:
    return (
        ("start" in h and _has_any(h, (*_ADDRESS_WORDS, "from")))
        or "origin" in h
        or "departure" in h
        or ("from" in h and _has_any(h, _ADDRESS_WORDS))
        or h in ("start", "from")
    )


def _is_end(h: str) -> bool:
    return (
        ("end" in h and _has_any(h, (*_ADDRESS_WORDS, "to")))
        or "destination" in h
        or "arrival" in h
        or ("to" in h and _has_any(h, _ADDRESS_WORDS))
        or h in ("end", "to", "destination")
    )


def _is_notes(h: str) -> bool:
    return _has_any(h, ("note", "comment", "description"))


def detect_headers(rows: Sequence[RawRow]) -> HeaderMapping:
    """Infer a best-effort HeaderMapping from the first row's column names.

    Returns an empty mapping for empty input. Each column is assigned to at
    most one field: the first rule (in priority order) that matches decides.
    """
    if not rows:
        return HeaderMapping()

    found: dict[str, str] = {}
    for header in rows[0].keys():
        h = str(header).lower()
        if _is_date(h):
            found.setdefault("date", header)
        elif _is_start(h):
            found.setdefault("start_address", header)
        elif _is_end(h):
            found.setdefault("end_address", header)
        elif (
            "start_address" not in found
            and "end_address" not in found
            and _has_any(h, _ADDRESS_WORDS)
        ):
            # 汎用 "Address" 列のみのシート向けフォールバック
            found["start_address"] = header
        elif _is_notes(h):
            found.setdefault("notes", header)
    return HeaderMapping(**found)

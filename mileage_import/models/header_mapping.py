from __future__ import annotations

from dataclasses import dataclass

"""HeaderMapping model: which spreadsheet column holds which semantic field."""

__all__ = [
    "HeaderMapping",
]


@dataclass(frozen=True)
class HeaderMapping:
    """Column names (not values) detected or confirmed for one import batch.

    Any field may be None when the sheet has no matching column; consumers
    treat a None field as "not available".
    """
    date: str | None = None
    start_address: str | None = None
    end_address: str | None = None
    notes: str | None = None

    def as_dict(self) -> dict[str, str]:
        """Return only the detected fields (camelCase keys, as shown to users)."""
        pairs = {
            "date": self.date,
            "startAddress": self.start_address,
            "endAddress": self.end_address,
            "notes": self.notes,
        }
        return {k: v for k, v in pairs.items() if v is not None}

    def with_overrides(self, **overrides: str | None) -> HeaderMapping:
        """Return a copy with user-confirmed columns replacing detected ones."""
        values = {
            "date": self.date,
            "start_address": self.start_address,
            "end_address": self.end_address,
            "notes": self.notes,
        }
        for key, value in overrides.items():
            if key not in values:
                raise KeyError(f"unknown mapping field: {key}")
            if value is not None:
                values[key] = value
        return HeaderMapping(**values)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from .row_data import RawRow

"""In-memory daily itinerary models (never persisted directly)."""

__all__ = [
    "Stop",
    "DailyItinerary",
]


@dataclass(frozen=True)
class Stop:
    address: str  # 空文字 = 住所なし (現在地を維持)
    notes: str
    raw_row: RawRow


@dataclass(frozen=True)
class DailyItinerary:
    """Ordered stops sharing one calendar date.

    is_hotel_stay / hotel_address are set from the first stop whose notes
    look like an overnight stay; that stop's address is where the day ends.
    """
    date: date
    stops: list[Stop] = field(default_factory=list)
    is_hotel_stay: bool = False
    hotel_address: str | None = None

    @property
    def rows(self) -> list[RawRow]:
        return [s.raw_row for s in self.stops]

    @property
    def addresses(self) -> list[str]:
        return [s.address for s in self.stops]

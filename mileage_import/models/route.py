from __future__ import annotations

from dataclasses import dataclass, field

from .row_data import RawRow

"""Routing result models."""

__all__ = [
    "RouteLeg",
    "DayRoute",
]


@dataclass(frozen=True)
class RouteLeg:
    """One origin -> destination provider result."""
    distance_miles: float
    duration_seconds: int
    resolved_start_address: str
    resolved_end_address: str


@dataclass(frozen=True)
class DayRoute:
    """Aggregated route for one day, ready to be upserted."""
    distance: float  # miles
    amount: float  # distance * mileage rate
    resolved_start: str
    resolved_end: str
    is_hotel_stay: bool = False
    notes: str = ""
    legs: list[RouteLeg] = field(default_factory=list)
    original_data: list[RawRow] = field(default_factory=list)  # 当日の元行

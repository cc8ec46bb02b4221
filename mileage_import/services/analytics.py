from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..models.schedule_entry import ScheduleEntry

"""Mileage totals over a user's schedule entries (dashboard / report view)."""

__all__ = [
    "MileageTotals",
    "summarize_entries",
]


@dataclass(frozen=True)
class MileageTotals:
    total_distance: float
    total_amount: float
    trip_days: int
    avg_daily_distance: float


def summarize_entries(entries: Iterable[ScheduleEntry]) -> MileageTotals:
    """Sum distance / amount; every entry counts as a trip day (errors count as 0 mi)."""
    items = list(entries)
    total_distance = sum(e.calculated_distance or 0.0 for e in items)
    total_amount = sum(e.calculated_amount or 0.0 for e in items)
    days = len(items)
    return MileageTotals(
        total_distance=total_distance,
        total_amount=total_amount,
        trip_days=days,
        avg_daily_distance=total_distance / days if days > 0 else 0.0,
    )

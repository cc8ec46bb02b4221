from __future__ import annotations

import logging
from datetime import date

from ..db.store import ScheduleStore
from ..models.route import DayRoute
from ..models.row_data import RawRow
from ..models.schedule_entry import ProcessingStatus, ScheduleEntry

"""Day-level idempotency & merge.

One entry per (user, date). A second import touching the same date adds its
distance / amount to the existing entry instead of overwriting it.
Re-importing the *same* bytes would double count; the duplicate-file gate in
the orchestrator prevents that, so both must stay in place together.
"""

__all__ = [
    "NOTES_SEPARATOR",
    "upsert_day_result",
    "record_day_failure",
]

logger = logging.getLogger(__name__)

NOTES_SEPARATOR = " | "


def upsert_day_result(store: ScheduleStore, user_id: str, day: date, result: DayRoute) -> ScheduleEntry:
    """Create or additively merge the entry for (user_id, day)."""
    existing = store.get_entry_by_date(user_id, day)
    if existing is None:
        return store.create_entry(
            ScheduleEntry(
                id=None,
                user_id=user_id,
                date=day,
                start_address=result.resolved_start,
                end_address=result.resolved_end,
                notes=f"Daily route: {result.notes}".rstrip(),
                calculated_distance=result.distance,
                calculated_amount=result.amount,
                is_hotel_stay=result.is_hotel_stay,
                processing_status=ProcessingStatus.CALCULATED,
                original_data=list(result.original_data),
            )
        )

    notes = NOTES_SEPARATOR.join(n for n in (existing.notes, result.notes) if n)
    merged = store.update_entry(
        existing.id,  # type: ignore[arg-type]
        calculated_distance=(existing.calculated_distance or 0.0) + result.distance,
        calculated_amount=(existing.calculated_amount or 0.0) + result.amount,
        notes=notes,
        is_hotel_stay=existing.is_hotel_stay or result.is_hotel_stay,
        processing_status=ProcessingStatus.CALCULATED,
        error_message=None,
        original_data=[*existing.original_data, *result.original_data],
    )
    logger.debug("merged day=%s into entry=%s distance_mi=%.2f", day, existing.id, merged.calculated_distance)
    return merged


def record_day_failure(
    store: ScheduleStore,
    user_id: str,
    day: date,
    message: str,
    rows: list[RawRow],
    start_address: str,
    end_address: str | None,
) -> ScheduleEntry:
    """Persist a failed day without breaking the one-entry-per-date rule.

    - no entry yet: create an error entry carrying the message and rows
    - existing error entry: replace the message, append the rows
    - existing calculated entry: left untouched (its totals stay valid)
    """
    existing = store.get_entry_by_date(user_id, day)
    if existing is None:
        return store.create_entry(
            ScheduleEntry(
                id=None,
                user_id=user_id,
                date=day,
                start_address=start_address,
                end_address=end_address,
                notes=f"Error processing daily route for {day.isoformat()}",
                processing_status=ProcessingStatus.ERROR,
                error_message=message,
                original_data=list(rows),
            )
        )
    if existing.processing_status is ProcessingStatus.ERROR:
        return store.update_entry(
            existing.id,  # type: ignore[arg-type]
            error_message=message,
            original_data=[*existing.original_data, *rows],
        )
    logger.warning("day=%s failed but keeps its calculated entry=%s", day, existing.id)
    return existing

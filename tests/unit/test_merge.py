from __future__ import annotations

from datetime import date

import pytest

from mileage_import.models.route import DayRoute
from mileage_import.models.schedule_entry import ProcessingStatus
from mileage_import.services.merge import record_day_failure, upsert_day_result

DAY = date(2023, 1, 1)


def _route(distance: float, notes: str, hotel: bool = False, rows: list | None = None) -> DayRoute:
    return DayRoute(
        distance=distance,
        amount=distance * 0.5,
        resolved_start="HQ",
        resolved_end="HQ",
        is_hotel_stay=hotel,
        notes=notes,
        original_data=rows or [{"Address": notes}],
    )


def test_upsert_creates_calculated_entry(store):
    entry = upsert_day_result(store, "u1", DAY, _route(12.0, "A → B"))
    assert entry.id is not None
    assert entry.processing_status is ProcessingStatus.CALCULATED
    assert entry.calculated_distance == 12.0
    assert entry.calculated_amount == 6.0
    assert entry.notes == "Daily route: A → B"
    assert store.list_entries("u1") == [entry]


def test_upsert_merges_additively(store):
    first = upsert_day_result(store, "u1", DAY, _route(10.0, "A", rows=[{"r": 1}]))
    merged = upsert_day_result(store, "u1", DAY, _route(5.0, "C (Hotel stay)", hotel=True, rows=[{"r": 2}]))

    assert merged.id == first.id
    assert len(store.list_entries("u1")) == 1
    assert merged.calculated_distance == pytest.approx(15.0)
    assert merged.calculated_amount == pytest.approx(7.5)
    assert merged.notes == "Daily route: A | C (Hotel stay)"
    assert merged.is_hotel_stay is True
    assert merged.original_data == [{"r": 1}, {"r": 2}]


def test_merge_keeps_hotel_flag_once_set(store):
    upsert_day_result(store, "u1", DAY, _route(1.0, "H", hotel=True))
    merged = upsert_day_result(store, "u1", DAY, _route(1.0, "X"))
    assert merged.is_hotel_stay is True


def test_merge_over_error_entry_becomes_calculated(store):
    record_day_failure(store, "u1", DAY, "NOT_FOUND", [{"r": 1}], "HQ", "HQ")
    merged = upsert_day_result(store, "u1", DAY, _route(4.0, "A"))
    assert merged.processing_status is ProcessingStatus.CALCULATED
    assert merged.error_message is None
    assert merged.calculated_distance == 4.0


def test_record_failure_creates_error_entry(store):
    entry = record_day_failure(store, "u1", DAY, "Google Directions API error: NOT_FOUND", [{"r": 1}], "HQ", None)
    assert entry.processing_status is ProcessingStatus.ERROR
    assert entry.error_message == "Google Directions API error: NOT_FOUND"
    assert entry.notes == "Error processing daily route for 2023-01-01"
    assert entry.original_data == [{"r": 1}]
    assert entry.calculated_distance is None


def test_record_failure_updates_existing_error_entry(store):
    first = record_day_failure(store, "u1", DAY, "first", [{"r": 1}], "HQ", None)
    second = record_day_failure(store, "u1", DAY, "second", [{"r": 2}], "HQ", None)
    assert second.id == first.id
    assert second.error_message == "second"
    assert second.original_data == [{"r": 1}, {"r": 2}]
    assert len(store.list_entries("u1")) == 1


def test_record_failure_leaves_calculated_entry_untouched(store):
    ok = upsert_day_result(store, "u1", DAY, _route(8.0, "A"))
    after = record_day_failure(store, "u1", DAY, "boom", [{"r": 9}], "HQ", None)
    assert after == ok
    assert store.get_entry_by_date("u1", DAY) == ok


def test_entries_are_scoped_per_user(store):
    upsert_day_result(store, "u1", DAY, _route(1.0, "A"))
    upsert_day_result(store, "u2", DAY, _route(2.0, "B"))
    assert store.get_entry_by_date("u1", DAY).calculated_distance == 1.0
    assert store.get_entry_by_date("u2", DAY).calculated_distance == 2.0

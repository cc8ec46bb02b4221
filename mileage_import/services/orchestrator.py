from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from ..db.store import ScheduleStore
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import ErrorRecord
from ..models.header_mapping import HeaderMapping
from ..models.processing_result import ImportSummary
from ..models.route import RouteLeg
from ..models.row_data import RawRow
from ..models.schedule_entry import ProcessedFileRecord, ScheduleEntry, UserSettings
from .errors import ConfigurationError, DuplicateFileError, MappingError
from .itinerary import build_day, partition_rows_by_date
from .merge import record_day_failure, upsert_day_result
from .progress import ProgressTracker
from .routing import RoutingProvider, stitch_day

"""Import orchestration: duplicate-file gate + error-isolated day loop.

process_import() coordinates one import run for one user:
1. fail fast on missing routing key / default start address / date column
2. reject a file whose hash was already processed for the user (conflict)
3. group rows by calendar date (ascending), rejecting rows without a usable date
4. for each day: build itinerary -> stitch route -> upsert, in its own transaction;
   a failing day becomes an error entry + error log and the loop continues
5. record provider usage and the processed-file receipt

The whole run holds the user's lock so two imports never race on the
"does this date already have an entry" check.
"""

__all__ = [
    "API_PROVIDER",
    "API_ENDPOINT",
    "process_import",
    "usage_month",
]

logger = logging.getLogger(__name__)

API_PROVIDER = "google_directions"
API_ENDPOINT = "directions"

ERROR_TYPE_DAY = "daily_route_calculation"
ERROR_TYPE_INVALID_DATE = "invalid_date"


class _MeteredProvider:
    """Counts provider calls (successful or not) for usage accounting."""

    def __init__(self, inner: RoutingProvider) -> None:
        self.inner = inner
        self.calls = 0

    def route(self, origin: str, destination: str, api_key: str) -> RouteLeg:
        self.calls += 1
        return self.inner.route(origin, destination, api_key)


def usage_month(moment: datetime, tz_name: str) -> str:
    """Billing month (YYYY-MM) of `moment` in the configured timezone."""
    return moment.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m")


def _check_preconditions(settings: UserSettings, mapping: HeaderMapping) -> None:
    if not settings.api_key:
        raise ConfigurationError("Google API key not configured")
    if not settings.default_start_address:
        raise ConfigurationError("Default start address not configured in settings")
    if not mapping.date:
        raise MappingError("header mapping has no date column")


def _log_error(
    store: ScheduleStore, error_log: ErrorLogBuffer | None, record: ErrorRecord
) -> None:
    store.create_error_log(record)
    if error_log is not None:
        error_log.append(record)


def process_import(
    store: ScheduleStore,
    provider: RoutingProvider,
    user_id: str,
    rows: Sequence[RawRow],
    mapping: HeaderMapping,
    mileage_rate: float | None = None,
    file_hash: str | None = None,
    file_name: str | None = None,
    *,
    settings: UserSettings | None = None,
    cost_per_call: float = 0.0,
    usage_timezone: str = "UTC",
    error_log: ErrorLogBuffer | None = None,
) -> ImportSummary:
    """Run one import for user_id.

    Args:
        store: persistence (entries, processed files, error logs, usage)
        provider: routing provider, called once per leg
        user_id: owner of every entry written by this run
        rows: parsed RawRows
        mapping: confirmed HeaderMapping
        mileage_rate: cost per mile; defaults to the user's configured rate
        file_hash / file_name: enable the duplicate-file gate and receipt
        settings: resolved user settings; read from the store when omitted
        cost_per_call: provider price used for usage accounting
        usage_timezone: IANA zone deciding which month the usage is billed to
        error_log: optional JSON Lines buffer receiving every error record

    Raises:
        ConfigurationError: routing key or default start address missing
        MappingError: no date column in mapping
        DuplicateFileError: file_hash already processed for the user
    """
    start_time = datetime.now(UTC)
    if settings is None:
        settings = store.get_user_settings(user_id) or UserSettings(user_id=user_id)
    _check_preconditions(settings, mapping)

    api_key: str = settings.api_key  # type: ignore[assignment]
    default_start: str = settings.default_start_address  # type: ignore[assignment]
    default_end = settings.effective_end_address
    rate = mileage_rate if mileage_rate is not None else settings.mileage_rate

    with store.user_lock(user_id):
        if file_hash:
            prior = store.get_processed_file(user_id, file_hash)
            if prior is not None:
                logger.warning(
                    "file already processed user=%s file=%s at=%s", user_id, prior.file_name, prior.processed_at
                )
                raise DuplicateFileError(file_hash, prior.processed_at, prior.record_count)

        groups, invalid_rows = partition_rows_by_date(rows, mapping)
        if invalid_rows:
            with store.transaction():
                for bad in invalid_rows:
                    _log_error(
                        store,
                        error_log,
                        ErrorRecord.create(
                            user_id,
                            ERROR_TYPE_INVALID_DATE,
                            f"{bad.reason}: {bad.raw_value!r}",
                            {
                                "row": bad.index + 1,
                                "value": None if bad.raw_value is None else str(bad.raw_value),
                                "reason": bad.reason,
                            },
                        ),
                    )

        meter = _MeteredProvider(provider)
        entries: list[ScheduleEntry] = []
        failed_dates: list[date] = []
        new_dates = 0
        merged_dates = 0
        total_distance = 0.0
        total_amount = 0.0
        previous_hotel_address: str | None = None

        with ProgressTracker(len(groups)) as progress:
            for day, day_rows in groups.items():
                progress.start_day(day.isoformat())
                # 前日がホテル泊ならホテルから出発
                day_start = previous_hotel_address or default_start
                if store.get_entry_by_date(user_id, day) is None:
                    new_dates += 1
                else:
                    merged_dates += 1

                try:
                    with store.transaction():
                        itinerary = build_day(day, day_rows, mapping)
                        route = stitch_day(itinerary, day_start, default_end, meter, api_key, rate)
                        entry = upsert_day_result(store, user_id, day, route)
                except Exception as e:
                    message = str(e) or e.__class__.__name__
                    logger.error("day=%s failed: %s", day.isoformat(), message)
                    with store.transaction():
                        entry = record_day_failure(
                            store, user_id, day, message, list(day_rows), day_start, default_end
                        )
                        _log_error(
                            store,
                            error_log,
                            ErrorRecord.create(
                                user_id,
                                ERROR_TYPE_DAY,
                                message,
                                {"date": day.isoformat(), "entriesCount": len(day_rows)},
                            ),
                        )
                    failed_dates.append(day)
                    previous_hotel_address = None
                    progress.finish_day(success=False)
                else:
                    total_distance += route.distance
                    total_amount += route.amount
                    previous_hotel_address = (
                        itinerary.hotel_address if route.is_hotel_stay and itinerary.hotel_address else None
                    )
                    logger.info(
                        "day=%s status=calculated legs=%d distance_mi=%.2f hotel=%s",
                        day.isoformat(),
                        len(route.legs),
                        route.distance,
                        route.is_hotel_stay,
                    )
                    progress.finish_day(success=True)
                entries.append(entry)

        record_count = sum(len(r) for r in groups.values())
        end_time = datetime.now(UTC)
        with store.transaction():
            if meter.calls:
                store.record_api_usage(
                    user_id,
                    API_PROVIDER,
                    API_ENDPOINT,
                    usage_month(start_time, usage_timezone),
                    meter.calls,
                    meter.calls * cost_per_call,
                    end_time,
                )
            if file_hash:
                store.create_processed_file(
                    ProcessedFileRecord(
                        user_id=user_id,
                        file_hash=file_hash,
                        file_name=file_name or "<unnamed>",
                        processed_at=end_time,
                        record_count=record_count,
                    )
                )

    return ImportSummary(
        entries_processed=len(entries),
        new_dates_processed=new_dates,
        skipped_duplicates=merged_dates,
        failed_dates=failed_dates,
        invalid_rows=len(invalid_rows),
        record_count=record_count,
        total_distance=total_distance,
        total_amount=total_amount,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        entries=entries,
    )

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from .schedule_entry import ScheduleEntry

"""Result models returned by an import run."""

__all__ = [
    "ImportSummary",
]


@dataclass(frozen=True)
class ImportSummary:
    """Aggregated outcome of one process_import() call.

    entries_processed counts every day that produced an entry (calculated or
    error). skipped_duplicates counts dates that already had an entry for the
    user; those days are merged into the existing entry instead of creating a
    second one.
    """
    entries_processed: int
    new_dates_processed: int
    skipped_duplicates: int
    failed_dates: list[date]
    invalid_rows: int  # 日付が解釈できず除外した行数
    record_count: int  # 処理対象になった行数 (ProcessedFileRecord へ記録)
    total_distance: float
    total_amount: float
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    entries: list[ScheduleEntry] = field(default_factory=list)

    @property
    def calculated_days(self) -> int:
        return self.entries_processed - len(self.failed_dates)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_dates)

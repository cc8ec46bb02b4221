from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from .row_data import RawRow

"""Persisted models: ScheduleEntry, ProcessedFileRecord, UserSettings, ApiUsageRecord.

The persistence layer owns storage of these rows, but their shape and the
per-user-per-date merge rules are defined here and in services.merge.

ScheduleEntry lifecycle: pending -> (calculated | error). A later import of
the same date moves an entry back to calculated when it merges successfully.
"""

__all__ = [
    "ProcessingStatus",
    "ScheduleEntry",
    "ProcessedFileRecord",
    "UserSettings",
    "ApiUsageRecord",
    "DEFAULT_MILEAGE_RATE",
]

DEFAULT_MILEAGE_RATE = 0.655  # USD / mile


class ProcessingStatus(Enum):
    PENDING = "pending"
    CALCULATED = "calculated"
    ERROR = "error"


@dataclass(frozen=True)
class ScheduleEntry:
    """One user's summarized route for one calendar date.

    At most one entry exists per (user_id, date); a second import touching
    the same date is merged into it (see services.merge).
    """
    id: str | None  # ストア側で採番
    user_id: str
    date: date
    start_address: str
    end_address: str | None = None
    calculated_distance: float | None = None  # miles
    calculated_amount: float | None = None
    is_hotel_stay: bool = False
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    error_message: str | None = None  # status == error の時のみ
    notes: str | None = None
    original_data: list[RawRow] = field(default_factory=list)  # マージ時は追記のみ


@dataclass(frozen=True)
class ProcessedFileRecord:
    """Receipt proving a file's bytes were already imported for a user."""
    user_id: str
    file_hash: str
    file_name: str
    processed_at: datetime
    record_count: int = 0


@dataclass(frozen=True)
class UserSettings:
    """Per-user import settings (routing key, default addresses, rate)."""
    user_id: str
    api_key: str | None = None
    default_start_address: str | None = None
    default_end_address: str | None = None
    mileage_rate: float = DEFAULT_MILEAGE_RATE

    @property
    def effective_end_address(self) -> str | None:
        # 終了住所が未設定なら開始住所へ戻る
        return self.default_end_address or self.default_start_address


@dataclass(frozen=True)
class ApiUsageRecord:
    """Monthly routing provider usage counter for one user."""
    user_id: str
    api_provider: str  # e.g. "google_directions"
    endpoint: str
    month: str  # YYYY-MM
    call_count: int = 0
    total_cost: float = 0.0
    last_called: datetime | None = None

from __future__ import annotations

import functools
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any

import psycopg2
import psycopg2.extras

from ..models.error_record import ErrorRecord
from ..models.schedule_entry import (
    ApiUsageRecord,
    ProcessedFileRecord,
    ProcessingStatus,
    ScheduleEntry,
    UserSettings,
)
from .store import ScheduleStore, StoreError

"""PostgreSQL implementation of ScheduleStore (psycopg2).

The connection is used with autocommit off; transaction() marks commit /
rollback boundaries so one failing day never rolls back earlier days.
Per-user serialization uses a session-level advisory lock keyed by
hashtext(user_id).
"""

__all__ = [
    "PostgresStore",
    "SCHEMA_PATH",
    "apply_schema",
]

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# dataclass field -> column (update_entry で更新可能な列のみ)
_ENTRY_COLUMNS = {
    "start_address": "start_address",
    "end_address": "end_address",
    "notes": "notes",
    "calculated_distance": "calculated_distance",
    "calculated_amount": "calculated_amount",
    "is_hotel_stay": "is_hotel_stay",
    "processing_status": "processing_status",
    "error_message": "error_message",
    "original_data": "original_data",
}

_json_dumps = functools.partial(json.dumps, default=str, ensure_ascii=False)


def _adapt(field_name: str, value: Any) -> Any:
    if field_name == "processing_status" and isinstance(value, ProcessingStatus):
        return value.value
    if field_name in ("original_data", "context"):
        return psycopg2.extras.Json(value, dumps=_json_dumps)
    return value


def _to_entry(row: dict[str, Any]) -> ScheduleEntry:
    day = row["date"]
    if isinstance(day, datetime):
        day = day.date()
    return ScheduleEntry(
        id=str(row["id"]),
        user_id=row["user_id"],
        date=day,
        start_address=row["start_address"],
        end_address=row.get("end_address"),
        calculated_distance=row.get("calculated_distance"),
        calculated_amount=row.get("calculated_amount"),
        is_hotel_stay=bool(row.get("is_hotel_stay")),
        processing_status=ProcessingStatus(row.get("processing_status") or "pending"),
        error_message=row.get("error_message"),
        notes=row.get("notes"),
        original_data=list(row.get("original_data") or []),
    )


def _to_usage(row: dict[str, Any]) -> ApiUsageRecord:
    return ApiUsageRecord(
        user_id=row["user_id"],
        api_provider=row["api_provider"],
        endpoint=row["endpoint"],
        month=row["month"],
        call_count=int(row.get("call_count") or 0),
        total_cost=float(row.get("total_cost") or 0.0),
        last_called=row.get("last_called"),
    )


def apply_schema(conn: Any, schema_path: Path = SCHEMA_PATH) -> None:
    """Create tables if missing (idempotent)."""
    with conn.cursor() as cur:
        cur.execute(schema_path.read_text(encoding="utf-8"))
    conn.commit()


class PostgresStore(ScheduleStore):
    def __init__(self, conn: Any) -> None:
        self.conn = conn

    def _cursor(self) -> Any:
        return self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def _fetchone(self, sql: str, params: tuple[Any, ...]) -> dict[str, Any] | None:
        try:
            with self._cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchone()
        except psycopg2.Error as e:
            raise StoreError(str(e)) from e

    def _fetchall(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        try:
            with self._cursor() as cur:
                cur.execute(sql, params)
                return list(cur.fetchall())
        except psycopg2.Error as e:
            raise StoreError(str(e)) from e

    # --- settings ---
    def get_user_settings(self, user_id: str) -> UserSettings | None:
        row = self._fetchone("SELECT * FROM app_settings WHERE user_id = %s", (user_id,))
        if row is None:
            return None
        return UserSettings(
            user_id=row["user_id"],
            api_key=row.get("google_api_key"),
            default_start_address=row.get("default_start_address"),
            default_end_address=row.get("default_end_address"),
            mileage_rate=float(row["mileage_rate"]) if row.get("mileage_rate") is not None else 0.655,
        )

    def save_user_settings(self, settings: UserSettings) -> UserSettings:
        self._fetchone(
            """
            INSERT INTO app_settings
              (user_id, google_api_key, mileage_rate, default_start_address, default_end_address)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE SET
              google_api_key = EXCLUDED.google_api_key,
              mileage_rate = EXCLUDED.mileage_rate,
              default_start_address = EXCLUDED.default_start_address,
              default_end_address = EXCLUDED.default_end_address
            RETURNING id
            """,
            (
                settings.user_id,
                settings.api_key,
                settings.mileage_rate,
                settings.default_start_address,
                settings.default_end_address,
            ),
        )
        return settings

    # --- schedule entries ---
    def get_entry_by_date(self, user_id: str, day: date) -> ScheduleEntry | None:
        row = self._fetchone(
            "SELECT * FROM schedule_entries WHERE user_id = %s AND date = %s", (user_id, day)
        )
        return _to_entry(row) if row else None

    def list_entries(self, user_id: str) -> list[ScheduleEntry]:
        rows = self._fetchall(
            "SELECT * FROM schedule_entries WHERE user_id = %s ORDER BY date", (user_id,)
        )
        return [_to_entry(r) for r in rows]

    def create_entry(self, entry: ScheduleEntry) -> ScheduleEntry:
        row = self._fetchone(
            """
            INSERT INTO schedule_entries
              (user_id, date, start_address, end_address, notes, calculated_distance,
               calculated_amount, is_hotel_stay, processing_status, error_message, original_data)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                entry.user_id,
                entry.date,
                entry.start_address,
                entry.end_address,
                entry.notes,
                entry.calculated_distance,
                entry.calculated_amount,
                entry.is_hotel_stay,
                _adapt("processing_status", entry.processing_status),
                entry.error_message,
                _adapt("original_data", entry.original_data),
            ),
        )
        if row is None:  # pragma: no cover - RETURNING always yields a row
            raise StoreError("insert returned no row")
        return _to_entry(row)

    def update_entry(self, entry_id: str, **changes: Any) -> ScheduleEntry:
        unknown = set(changes) - set(_ENTRY_COLUMNS)
        if unknown:
            raise StoreError(f"cannot update columns: {sorted(unknown)}")
        if not changes:
            raise StoreError("no columns to update")
        assignments = ", ".join(f"{_ENTRY_COLUMNS[k]} = %s" for k in changes)
        params = tuple(_adapt(k, v) for k, v in changes.items()) + (entry_id,)
        row = self._fetchone(
            f"UPDATE schedule_entries SET {assignments} WHERE id = %s RETURNING *", params
        )
        if row is None:
            raise StoreError(f"entry not found: {entry_id}")
        return _to_entry(row)

    # --- processed files ---
    def get_processed_file(self, user_id: str, file_hash: str) -> ProcessedFileRecord | None:
        row = self._fetchone(
            "SELECT * FROM processed_files WHERE user_id = %s AND file_hash = %s", (user_id, file_hash)
        )
        if row is None:
            return None
        return ProcessedFileRecord(
            user_id=row["user_id"],
            file_hash=row["file_hash"],
            file_name=row["file_name"],
            processed_at=row["processed_at"],
            record_count=int(row.get("record_count") or 0),
        )

    def create_processed_file(self, record: ProcessedFileRecord) -> ProcessedFileRecord:
        self._fetchone(
            """
            INSERT INTO processed_files (user_id, file_hash, file_name, processed_at, record_count)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
            """,
            (record.user_id, record.file_hash, record.file_name, record.processed_at, record.record_count),
        )
        return record

    # --- error log / usage ---
    def create_error_log(self, record: ErrorRecord) -> None:
        self._fetchone(
            """
            INSERT INTO error_logs (user_id, error_type, error_message, context, "timestamp")
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                record.user_id,
                record.error_type,
                record.error_message,
                _adapt("context", record.context),
                record.timestamp,
            ),
        )

    def list_error_logs(self, user_id: str) -> list[ErrorRecord]:
        rows = self._fetchall(
            'SELECT * FROM error_logs WHERE user_id = %s ORDER BY "timestamp"', (user_id,)
        )
        out: list[ErrorRecord] = []
        for r in rows:
            ts = r["timestamp"]
            out.append(
                ErrorRecord(
                    timestamp=ts.isoformat() if isinstance(ts, datetime) else str(ts),
                    user_id=r["user_id"],
                    error_type=r["error_type"],
                    error_message=r["error_message"],
                    context=dict(r.get("context") or {}),
                )
            )
        return out

    def record_api_usage(
        self,
        user_id: str,
        api_provider: str,
        endpoint: str,
        month: str,
        calls: int,
        cost: float,
        called_at: datetime,
    ) -> ApiUsageRecord:
        row = self._fetchone(
            """
            INSERT INTO api_usage
              (user_id, api_provider, endpoint, month, call_count, total_cost, last_called)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, api_provider, endpoint, month) DO UPDATE SET
              call_count = api_usage.call_count + EXCLUDED.call_count,
              total_cost = api_usage.total_cost + EXCLUDED.total_cost,
              last_called = EXCLUDED.last_called
            RETURNING *
            """,
            (user_id, api_provider, endpoint, month, calls, cost, called_at),
        )
        if row is None:  # pragma: no cover
            raise StoreError("usage upsert returned no row")
        return _to_usage(row)

    def list_api_usage(self, user_id: str, month: str | None = None) -> list[ApiUsageRecord]:
        if month is None:
            rows = self._fetchall("SELECT * FROM api_usage WHERE user_id = %s ORDER BY month", (user_id,))
        else:
            rows = self._fetchall(
                "SELECT * FROM api_usage WHERE user_id = %s AND month = %s", (user_id, month)
            )
        return [_to_usage(r) for r in rows]

    # --- concurrency / transactions ---
    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        self._fetchone("SELECT pg_advisory_lock(hashtext(%s))", (user_id,))
        self.conn.commit()
        try:
            yield
        finally:
            try:
                self.conn.rollback()  # 未確定分は破棄してからロック解放
                self._fetchone("SELECT pg_advisory_unlock(hashtext(%s))", (user_id,))
                self.conn.commit()
            except (psycopg2.Error, StoreError) as e:
                # 接続断の場合はセッション終了でロックも解放される
                logger.warning("advisory unlock failed user=%s: %s", user_id, e)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
        except BaseException:
            self.conn.rollback()
            raise
        try:
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StoreError(f"commit failed: {e}") from e

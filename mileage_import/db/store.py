from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Any

from ..models.error_record import ErrorRecord
from ..models.schedule_entry import (
    ApiUsageRecord,
    ProcessedFileRecord,
    ScheduleEntry,
    UserSettings,
)

"""Persistence interface for schedule entries, processed files and error logs.

ScheduleStore is the boundary the import core talks to. Two implementations:
- InMemoryStore: process-local dicts (tests / DISABLE_DB_CONNECT=1 mock mode)
- PostgresStore (db.pg_store): psycopg2 against db/schema.sql

The core relies on three guarantees:
- entries are addressed by (user_id, date) and at most one exists per pair
- user_lock(user_id) serializes whole import runs for one user
- transaction() commits on success and rolls back the block's writes on error
"""

__all__ = [
    "StoreError",
    "ScheduleStore",
    "InMemoryStore",
]


class StoreError(Exception):
    pass


class ScheduleStore(ABC):
    # --- settings ---
    @abstractmethod
    def get_user_settings(self, user_id: str) -> UserSettings | None: ...

    @abstractmethod
    def save_user_settings(self, settings: UserSettings) -> UserSettings: ...

    # --- schedule entries ---
    @abstractmethod
    def get_entry_by_date(self, user_id: str, day: date) -> ScheduleEntry | None: ...

    @abstractmethod
    def list_entries(self, user_id: str) -> list[ScheduleEntry]: ...

    @abstractmethod
    def create_entry(self, entry: ScheduleEntry) -> ScheduleEntry: ...

    @abstractmethod
    def update_entry(self, entry_id: str, **changes: Any) -> ScheduleEntry: ...

    # --- processed files ---
    @abstractmethod
    def get_processed_file(self, user_id: str, file_hash: str) -> ProcessedFileRecord | None: ...

    @abstractmethod
    def create_processed_file(self, record: ProcessedFileRecord) -> ProcessedFileRecord: ...

    # --- error log / usage ---
    @abstractmethod
    def create_error_log(self, record: ErrorRecord) -> None: ...

    @abstractmethod
    def list_error_logs(self, user_id: str) -> list[ErrorRecord]: ...

    @abstractmethod
    def record_api_usage(
        self,
        user_id: str,
        api_provider: str,
        endpoint: str,
        month: str,
        calls: int,
        cost: float,
        called_at: datetime,
    ) -> ApiUsageRecord: ...

    @abstractmethod
    def list_api_usage(self, user_id: str, month: str | None = None) -> list[ApiUsageRecord]: ...

    # --- concurrency / transactions ---
    @abstractmethod
    def user_lock(self, user_id: str) -> Any:
        """Context manager serializing import runs for one user."""

    @abstractmethod
    def transaction(self) -> Any:
        """Context manager: commit on success, roll back on exception."""


class InMemoryStore(ScheduleStore):
    """Dict-backed store. Writes inside a failed transaction() are undone."""

    def __init__(self) -> None:
        self._settings: dict[str, UserSettings] = {}
        self._entries: dict[str, ScheduleEntry] = {}
        self._files: dict[tuple[str, str], ProcessedFileRecord] = {}
        self._errors: list[ErrorRecord] = []
        self._usage: dict[tuple[str, str, str, str], ApiUsageRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def get_user_settings(self, user_id: str) -> UserSettings | None:
        return self._settings.get(user_id)

    def save_user_settings(self, settings: UserSettings) -> UserSettings:
        self._settings[settings.user_id] = settings
        return settings

    def get_entry_by_date(self, user_id: str, day: date) -> ScheduleEntry | None:
        for e in self._entries.values():
            if e.user_id == user_id and e.date == day:
                return e
        return None

    def list_entries(self, user_id: str) -> list[ScheduleEntry]:
        return sorted((e for e in self._entries.values() if e.user_id == user_id), key=lambda e: e.date)

    def create_entry(self, entry: ScheduleEntry) -> ScheduleEntry:
        if self.get_entry_by_date(entry.user_id, entry.date) is not None:
            raise StoreError(f"entry already exists user={entry.user_id} date={entry.date}")
        created = replace(entry, id=entry.id or str(uuid.uuid4()), original_data=list(entry.original_data))
        self._entries[created.id] = created  # type: ignore[index]
        return created

    def update_entry(self, entry_id: str, **changes: Any) -> ScheduleEntry:
        if entry_id not in self._entries:
            raise StoreError(f"entry not found: {entry_id}")
        updated = replace(self._entries[entry_id], **changes)
        self._entries[entry_id] = updated
        return updated

    def get_processed_file(self, user_id: str, file_hash: str) -> ProcessedFileRecord | None:
        return self._files.get((user_id, file_hash))

    def create_processed_file(self, record: ProcessedFileRecord) -> ProcessedFileRecord:
        self._files[(record.user_id, record.file_hash)] = record
        return record

    def create_error_log(self, record: ErrorRecord) -> None:
        self._errors.append(record)

    def list_error_logs(self, user_id: str) -> list[ErrorRecord]:
        return [r for r in self._errors if r.user_id == user_id]

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
        key = (user_id, api_provider, endpoint, month)
        current = self._usage.get(key) or ApiUsageRecord(
            user_id=user_id, api_provider=api_provider, endpoint=endpoint, month=month
        )
        updated = replace(
            current,
            call_count=current.call_count + calls,
            total_cost=current.total_cost + cost,
            last_called=called_at,
        )
        self._usage[key] = updated
        return updated

    def list_api_usage(self, user_id: str, month: str | None = None) -> list[ApiUsageRecord]:
        return [
            u for k, u in self._usage.items() if k[0] == user_id and (month is None or k[3] == month)
        ]

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(user_id, threading.Lock())
        with lock:
            yield

    @contextmanager
    def transaction(self) -> Iterator[None]:
        # スナップショットを取り、例外時に戻す
        entries = dict(self._entries)
        files = dict(self._files)
        try:
            yield
        except BaseException:
            self._entries = entries
            self._files = files
            raise

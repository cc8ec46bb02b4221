from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

"""ErrorRecord model for the append-only error log.

Each record is written both to the store (error_logs table) and, by the CLI,
to a JSON Lines file. The JSON shape is fixed: timestamp, user_id,
error_type, error_message, context. No extra keys.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        user_id: Owner of the import run
        error_type: Classification in lower_snake_case (e.g. daily_route_calculation)
        error_message: Provider / data error message
        context: Small JSON-safe dict, e.g. {"date": ..., "entriesCount": ...}
    """
    timestamp: str  # ISO8601 UTC
    user_id: str
    error_type: str
    error_message: str
    context: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def create(
        user_id: str, error_type: str, error_message: str, context: dict[str, Any] | None = None
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            user_id=user_id,
            error_type=error_type,
            error_message=error_message,
            context=dict(context or {}),
        )

    def to_json_line(self) -> str:
        """Serialize to a single JSON Lines row."""
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

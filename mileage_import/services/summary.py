from __future__ import annotations

from ..models.processing_result import ImportSummary

"""SUMMARY line rendering for an import run."""


def _fmt_number(value: float, digits: int = 2) -> str:
    """Integers print without decimals, others rounded to `digits`."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    return f"{value:.{digits}f}"


def render_summary_line(summary: ImportSummary) -> str:
    """Render the one-line run summary.

    Format:
    SUMMARY days={n} calculated={ok} failed={err} new_dates={new}
    merged_dates={dup} rows={rows} invalid_rows={bad} distance_mi={mi}
    amount={amt} elapsed_sec={sec}

    Examples:
        >>> from datetime import datetime, timezone
        >>> t = datetime(2023, 1, 1, tzinfo=timezone.utc)
        >>> s = ImportSummary(
        ...     entries_processed=3, new_dates_processed=3, skipped_duplicates=0,
        ...     failed_dates=[], invalid_rows=0, record_count=7,
        ...     total_distance=42.5, total_amount=27.8375,
        ...     start_time=t, end_time=t, elapsed_seconds=0.0,
        ... )
        >>> render_summary_line(s)  # doctest: +ELLIPSIS
        'SUMMARY days=3 calculated=3 failed=0 new_dates=3 merged_dates=0 rows=7 ...'
    """
    return (
        f"SUMMARY days={summary.entries_processed} "
        f"calculated={summary.calculated_days} "
        f"failed={len(summary.failed_dates)} "
        f"new_dates={summary.new_dates_processed} "
        f"merged_dates={summary.skipped_duplicates} "
        f"rows={summary.record_count} "
        f"invalid_rows={summary.invalid_rows} "
        f"distance_mi={_fmt_number(summary.total_distance)} "
        f"amount={_fmt_number(summary.total_amount)} "
        f"elapsed_sec={_fmt_number(summary.elapsed_seconds, 3)}"
    )

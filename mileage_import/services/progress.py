from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

One bar over the days of an import run. In non-TTY environments (CI, pipes)
the bar is disabled to avoid ANSI control sequence spam in the log output.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Day-level progress bar; a no-op outside a TTY."""

    def __init__(self, total_days: int, *, description: str = "Routing days") -> None:
        self.total_days = total_days
        self.description = description
        self.current_day = 0
        self.failed_days = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_days,
                desc=description,
                unit="day",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_day(self, label: str) -> None:
        self.current_day += 1
        if self.enabled and self.pbar is not None:
            self.pbar.set_description(f"{self.description} {self.current_day}/{self.total_days} ({label})")

    def finish_day(self, success: bool = True) -> None:
        if not success:
            self.failed_days += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)
            self.pbar.set_postfix(ok=self.current_day - self.failed_days, failed=self.failed_days)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

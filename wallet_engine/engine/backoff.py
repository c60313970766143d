"""
Retry schedule for re-inquiring PENDING transactions.

Attempt N against a transaction only fires once the transaction's last
status write is at least schedule[N] seconds old:

  attempt 1: +20s
  attempt 2: +40s
  attempt 3: +120s
  attempt 4: +300s
  attempt 5: +600s

After the last attempt the transaction is force-failed. The per-transaction
attempt count lives in a process-local cache. A row created before the
process started may already have been inquired by its predecessor, so its
missing count is recovered from the transaction's age and a restart never
hands out a fresh budget. Rows created since start begin at zero.
"""

from collections.abc import Sequence
from typing import Optional

DEFAULT_SCHEDULE: tuple[int, ...] = (20, 40, 120, 300, 600)


def required_interval(attempts: int, schedule: Sequence[int] = DEFAULT_SCHEDULE) -> int:
    """Seconds that must have elapsed before attempt number `attempts` (0-based) may fire."""
    if 0 <= attempts < len(schedule):
        return schedule[attempts]
    return schedule[-1]


def is_due(elapsed_seconds: float, attempts: int, schedule: Sequence[int] = DEFAULT_SCHEDULE) -> bool:
    return elapsed_seconds >= required_interval(attempts, schedule)


def attempts_from_elapsed(age_seconds: float, schedule: Sequence[int] = DEFAULT_SCHEDULE) -> int:
    """
    Attempts that should already have been made for a transaction this old.

    Inside [schedule[k], schedule[k+1]) attempt k is the one currently due,
    so k attempts are behind it. Past the last step the final attempt is
    still granted once before the budget is exhausted.
    """
    passed = sum(1 for step in schedule if age_seconds >= step)
    return max(0, passed - 1)


def is_exhausted(attempts: int, schedule: Sequence[int] = DEFAULT_SCHEDULE) -> bool:
    return attempts >= len(schedule)


class AttemptTracker:
    """
    Process-local attempt counter keyed by provider transaction id.

    Advisory only: the durable transaction row stays the source of truth,
    and a missing entry is recomputed from the transaction's age when
    `recover_from_elapsed` is on.
    """

    def __init__(self, schedule: Sequence[int] = DEFAULT_SCHEDULE, recover_from_elapsed: bool = True):
        self._schedule = tuple(schedule)
        self._recover = recover_from_elapsed
        self._attempts: dict[str, int] = {}

    def get(self, key: str, age_seconds: Optional[float] = None) -> int:
        if key in self._attempts:
            return self._attempts[key]
        if self._recover and age_seconds is not None:
            return attempts_from_elapsed(age_seconds, self._schedule)
        return 0

    def record_attempt(self, key: str, current: int) -> int:
        self._attempts[key] = current + 1
        return self._attempts[key]

    def clear(self, key: str) -> None:
        self._attempts.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._attempts

    def __len__(self) -> int:
        return len(self._attempts)

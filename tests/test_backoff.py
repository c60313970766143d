"""Tests for the retry schedule and attempt tracking."""

import pytest

from wallet_engine.engine.backoff import (
    DEFAULT_SCHEDULE,
    AttemptTracker,
    attempts_from_elapsed,
    is_due,
    is_exhausted,
    required_interval,
)


class TestSchedule:
    def test_default_schedule(self):
        assert DEFAULT_SCHEDULE == (20, 40, 120, 300, 600)

    @pytest.mark.parametrize("attempts,interval", [(0, 20), (1, 40), (2, 120), (3, 300), (4, 600), (5, 600), (9, 600)])
    def test_required_interval(self, attempts, interval):
        assert required_interval(attempts) == interval

    def test_is_due_at_boundary(self):
        assert is_due(40, 1) is True
        assert is_due(39.9, 1) is False

    def test_not_due_before_first_step(self):
        assert is_due(19, 0) is False

    def test_exhausted_after_five_attempts(self):
        assert is_exhausted(4) is False
        assert is_exhausted(5) is True

    def test_custom_schedule(self):
        assert required_interval(1, [5, 10]) == 10
        assert is_exhausted(2, [5, 10]) is True


class TestAttemptsFromElapsed:
    @pytest.mark.parametrize(
        "age,attempts",
        [(0, 0), (19, 0), (20, 0), (39, 0), (40, 1), (119, 1), (120, 2), (300, 3), (599, 3), (600, 4), (86400, 4)],
    )
    def test_recovered_count(self, age, attempts):
        assert attempts_from_elapsed(age) == attempts

    def test_recovered_count_never_exhausts_on_its_own(self):
        # The final attempt is still granted after a restart
        assert not is_exhausted(attempts_from_elapsed(10_000))


class TestAttemptTracker:
    def test_unknown_key_starts_at_zero(self):
        tracker = AttemptTracker()
        assert tracker.get("txn_1") == 0

    def test_record_and_clear(self):
        tracker = AttemptTracker()
        assert tracker.record_attempt("txn_1", 0) == 1
        assert tracker.record_attempt("txn_1", 1) == 2
        assert tracker.get("txn_1") == 2
        assert "txn_1" in tracker

        tracker.clear("txn_1")
        assert "txn_1" not in tracker
        assert len(tracker) == 0

    def test_missing_key_recovered_from_age(self):
        tracker = AttemptTracker()
        assert tracker.get("txn_1", age_seconds=150) == 2

    def test_cached_count_wins_over_age(self):
        tracker = AttemptTracker()
        tracker.record_attempt("txn_1", 0)
        assert tracker.get("txn_1", age_seconds=700) == 1

    def test_recovery_disabled(self):
        tracker = AttemptTracker(recover_from_elapsed=False)
        assert tracker.get("txn_1", age_seconds=700) == 0

"""
Unit tests for read retry helpers.
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from bulletin.services.resilience import read_retry, with_sync_retry


def _dropped_connection():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


class TestWithSyncRetry:
    """Tests for with_sync_retry decorator."""

    def test_success_first_try(self):
        """Test that a successful call is not retried."""
        calls = []

        @with_sync_retry(max_attempts=3, min_wait=0.01)
        def fn():
            calls.append(1)
            return "ok"

        assert fn() == "ok"
        assert len(calls) == 1

    def test_retries_then_succeeds(self):
        """Test that a transient failure is retried."""
        calls = []

        @with_sync_retry(max_attempts=3, min_wait=0.01, retry_exceptions=(ValueError,))
        def fn():
            calls.append(1)
            if len(calls) < 3:
                raise ValueError("transient")
            return "ok"

        assert fn() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_attempts(self):
        calls = []

        @with_sync_retry(max_attempts=2, min_wait=0.01, retry_exceptions=(ValueError,))
        def fn():
            calls.append(1)
            raise ValueError("still broken")

        with pytest.raises(ValueError):
            fn()
        assert len(calls) == 2

    def test_other_exceptions_are_not_retried(self):
        calls = []

        @with_sync_retry(max_attempts=3, min_wait=0.01, retry_exceptions=(ValueError,))
        def fn():
            calls.append(1)
            raise KeyError("not transient")

        with pytest.raises(KeyError):
            fn()
        assert len(calls) == 1

    def test_before_retry_receives_call_args(self):
        hook = MagicMock()
        calls = []

        @with_sync_retry(max_attempts=2, min_wait=0.01, retry_exceptions=(ValueError,), before_retry=hook)
        def fn(a, b=None):
            calls.append(1)
            if len(calls) == 1:
                raise ValueError("once")
            return a

        assert fn("x", b=2) == "x"
        hook.assert_called_once_with("x", b=2)


class TestReadRetry:
    """Tests for read_retry()."""

    def test_rolls_back_session_between_attempts(self):
        """Test that a dropped connection is retried on a reset session."""
        db = MagicMock()
        calls = []

        @read_retry
        def fetch(session):
            calls.append(1)
            if len(calls) == 1:
                raise _dropped_connection()
            return ["row"]

        with patch("bulletin.services.resilience.time.sleep"):
            assert fetch(db) == ["row"]

        db.rollback.assert_called_once()

    def test_lifecycle_errors_pass_through(self):
        from bulletin.errors import NotFoundError

        db = MagicMock()

        @read_retry
        def fetch(session):
            raise NotFoundError("missing")

        with pytest.raises(NotFoundError):
            fetch(db)
        db.rollback.assert_not_called()

    def test_persistent_failure_is_raised(self):
        db = MagicMock()

        @read_retry
        def fetch(session):
            raise _dropped_connection()

        with patch("bulletin.services.resilience.time.sleep") as sleep:
            with pytest.raises(OperationalError):
                fetch(db)

        assert sleep.call_count == 2
        assert db.rollback.call_count == 2

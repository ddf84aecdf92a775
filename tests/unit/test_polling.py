#!/usr/bin/env python3
"""
Unit tests for the shared polling primitive
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from morphctl.errors import NotFoundError, TransportError, WaitTimeoutError
from morphctl.polling import poll_until


def _transient():
    return TransportError("GET", "/instance/inst_1", status_code=502, body="bad gateway")


class TestPollUntil:

    def test_returns_first_done_result(self, clock):
        fetch = MagicMock(side_effect=["a", "b", "done"])

        assert poll_until(fetch, lambda r: r == "done", timeout=10, interval=1) == "done"
        assert fetch.call_count == 3
        assert clock.sleeps == [1, 1]

    def test_zero_timeout_polls_once(self, clock):
        fetch = MagicMock(return_value="pending")

        with pytest.raises(WaitTimeoutError) as exc:
            poll_until(fetch, lambda r: False, timeout=0, describe=lambda r: r)

        assert fetch.call_count == 1
        assert exc.value.last_status == "pending"
        assert clock.sleeps == []

    def test_none_timeout_polls_once(self, clock):
        fetch = MagicMock(return_value="pending")
        with pytest.raises(WaitTimeoutError):
            poll_until(fetch, lambda r: False, timeout=None)
        assert fetch.call_count == 1

    def test_timeout_is_builtin_timeout_error(self, clock):
        with pytest.raises(TimeoutError):
            poll_until(lambda: 1, lambda r: False, timeout=3, interval=1)

    def test_sleep_never_overshoots_deadline(self, clock):
        with pytest.raises(WaitTimeoutError):
            poll_until(lambda: 1, lambda r: False, timeout=2.5, interval=1)
        assert sum(clock.sleeps) == pytest.approx(2.5)

    def test_backoff_is_capped(self, clock):
        with pytest.raises(WaitTimeoutError):
            poll_until(lambda: 1, lambda r: False, timeout=100, interval=1, backoff=2, max_interval=5)
        assert clock.sleeps[:5] == [1, 2, 4, 5, 5]

    def test_transient_errors_are_retried(self, clock):
        fetch = MagicMock(side_effect=[_transient(), _transient(), "done"])
        assert poll_until(fetch, lambda r: r == "done", timeout=10, interval=1) == "done"

    def test_consecutive_transient_errors_reraise(self, clock):
        fetch = MagicMock(side_effect=[_transient(), _transient(), _transient(), "done"])

        with pytest.raises(TransportError):
            poll_until(fetch, lambda r: r == "done", timeout=10, max_consecutive_errors=3)

        assert fetch.call_count == 3

    def test_transient_error_at_deadline_times_out(self, clock):
        fetch = MagicMock(side_effect=["pending", "pending", _transient()])

        with pytest.raises(WaitTimeoutError) as exc:
            poll_until(fetch, lambda r: False, timeout=2, interval=1, describe=lambda r: r)

        assert exc.value.last_status == "pending"
        assert isinstance(exc.value.__cause__, TransportError)
        assert fetch.call_count == 3

    def test_transient_error_on_single_attempt_times_out(self, clock):
        fetch = MagicMock(side_effect=_transient())

        with pytest.raises(WaitTimeoutError) as exc:
            poll_until(fetch, lambda r: True, timeout=0)

        assert exc.value.last_status is None

    def test_success_resets_error_count(self, clock):
        fetch = MagicMock(side_effect=[_transient(), _transient(), "x", _transient(), _transient(), "done"])
        assert poll_until(fetch, lambda r: r == "done", timeout=20, max_consecutive_errors=3) == "done"

    def test_non_transient_error_propagates_immediately(self, clock):
        fetch = MagicMock(side_effect=NotFoundError("GET", "/instance/x", status_code=404))

        with pytest.raises(NotFoundError):
            poll_until(fetch, lambda r: True, timeout=10)

        assert fetch.call_count == 1

    def test_other_exceptions_propagate(self, clock):
        fetch = MagicMock(side_effect=RuntimeError("terminal"))
        with pytest.raises(RuntimeError):
            poll_until(fetch, lambda r: True, timeout=10)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

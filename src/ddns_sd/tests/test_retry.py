"""
Tests for the store retry policies
"""
from unittest.mock import Mock

import pytest

from ddns_sd.lib.dns.base import ConflictError, TransientError
from ddns_sd.lib.dns.retry import RetryPolicy


def test_backoff_sequence(retry):
    """Delays start around half a second and grow by 10% plus jitter"""
    first = retry.next_delay()
    assert first == pytest.approx(0.75)
    second = retry.next_delay(first)
    assert second == pytest.approx(0.75 * 1.1 + 0.5)


def test_transient_retries_until_success(retry, sleeps):
    func = Mock(side_effect=[TransientError("throttled"), TransientError("throttled"), "done"])

    assert retry.transient(func, "arg", description="test") == "done"
    assert func.call_count == 3
    func.assert_called_with("arg")
    assert sleeps == [pytest.approx(0.75), pytest.approx(0.75 * 1.1 + 0.5)]


def test_transient_does_not_catch_other_errors(retry):
    func = Mock(side_effect=ConflictError("stale"))
    with pytest.raises(ConflictError):
        retry.transient(func)


def test_conflict_bound(sleeps, caplog):
    """An always-conflicting attempt runs N times with N-1 refreshes"""
    policy = RetryPolicy(sleep=sleeps.append, conflict_attempts=4)
    attempt = Mock(side_effect=ConflictError("stale"))
    refresh = Mock()

    assert policy.conflict(attempt, refresh, description="test") is False
    assert attempt.call_count == 4
    assert refresh.call_count == 3
    assert sleeps == []
    assert "giving up" in caplog.text


def test_conflict_success_after_refresh():
    policy = RetryPolicy(sleep=lambda s: None)
    attempt = Mock(side_effect=[ConflictError("stale"), None])
    refresh = Mock()

    assert policy.conflict(attempt, refresh) is True
    assert attempt.call_count == 2
    refresh.assert_called_once_with()


def test_conflict_attempts_must_be_positive():
    with pytest.raises(ValueError):
        RetryPolicy(conflict_attempts=0)

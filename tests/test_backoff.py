"""Tests for retry scheduling and error classification."""

import pytest

from appstorys.core.exceptions import (
    AuthenticationFailedError,
    DecodingError,
    InvalidURLError,
    NetworkError,
    ServerError,
    StorageError,
    TransportErrorKind,
)
from appstorys.mobile.backoff import BackoffPolicy, RetryAttempt, is_retryable


class TestBackoffPolicy:
    """Tests for BackoffPolicy."""

    def test_default_schedule(self):
        policy = BackoffPolicy()
        assert policy.delays == (1.0, 2.0, 4.0)
        assert policy.max_retries == 3
        assert policy.max_attempts == 4

    def test_delay_for_attempt(self):
        policy = BackoffPolicy()
        assert [policy.delay_for_attempt(i) for i in range(3)] == [1.0, 2.0, 4.0]

    @pytest.mark.parametrize("index", [-1, 3, 10])
    def test_delay_outside_schedule(self, index):
        with pytest.raises(ValueError):
            BackoffPolicy().delay_for_attempt(index)

    def test_attempts(self):
        attempts = list(BackoffPolicy(delays=(0.5, 1.5)).attempts())
        assert attempts == [RetryAttempt(index=0, delay=0.5), RetryAttempt(index=1, delay=1.5)]

    def test_no_retries(self):
        policy = BackoffPolicy(delays=())
        assert policy.max_attempts == 1
        assert list(policy.attempts()) == []


class TestIsRetryable:
    """Tests for failure classification."""

    @pytest.mark.parametrize(
        "kind",
        [
            TransportErrorKind.NOT_CONNECTED,
            TransportErrorKind.CANNOT_FIND_HOST,
            TransportErrorKind.CANNOT_CONNECT,
            TransportErrorKind.CONNECTION_LOST,
            TransportErrorKind.DNS_FAILURE,
            TransportErrorKind.TIMED_OUT,
        ],
    )
    def test_connectivity_failures_are_retryable(self, kind):
        assert is_retryable(NetworkError("offline", kind=kind))

    def test_other_transport_failure_is_terminal(self):
        assert not is_retryable(NetworkError("tls", kind=TransportErrorKind.OTHER))

    @pytest.mark.parametrize("status", [500, 502, 503, 599])
    def test_server_errors_are_retryable(self, status):
        assert is_retryable(ServerError(status))

    @pytest.mark.parametrize("status", [400, 404, 409, 429])
    def test_client_statuses_are_terminal(self, status):
        assert not is_retryable(ServerError(status))

    @pytest.mark.parametrize("status", [401, 403])
    def test_credential_rejection_is_terminal(self, status):
        assert not is_retryable(AuthenticationFailedError(status_code=status))

    @pytest.mark.parametrize(
        "error",
        [
            DecodingError(),
            InvalidURLError(url="nope"),
            StorageError("disk full"),
            RuntimeError("boom"),
        ],
    )
    def test_everything_else_is_terminal(self, error):
        assert not is_retryable(error)
        assert not BackoffPolicy().is_retryable(error)

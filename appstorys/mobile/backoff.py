"""Retry schedule and error classification.

Maps an attempt index to a delay and decides whether a failure is
worth retrying. Credential rejections are never retried; transient
network and server failures are.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

from ..core.exceptions import (
    AuthenticationFailedError,
    NetworkError,
    ServerError,
    TransportErrorKind,
)

RETRYABLE_TRANSPORT_KINDS = frozenset(
    {
        TransportErrorKind.NOT_CONNECTED,
        TransportErrorKind.CANNOT_FIND_HOST,
        TransportErrorKind.CANNOT_CONNECT,
        TransportErrorKind.CONNECTION_LOST,
        TransportErrorKind.DNS_FAILURE,
        TransportErrorKind.TIMED_OUT,
    }
)


@dataclass(frozen=True)
class RetryAttempt:
    """A scheduled retry: which retry it is and how long to wait first."""

    index: int
    delay: float


def is_retryable(error: BaseException) -> bool:
    """Classify a failure as retryable (True) or terminal (False)."""
    if isinstance(error, NetworkError):
        return error.kind in RETRYABLE_TRANSPORT_KINDS

    if isinstance(error, ServerError):
        return error.is_server_side

    if isinstance(error, AuthenticationFailedError):
        return False

    return False


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff schedule.

    The default schedule makes three retries after the first attempt,
    waiting 1s, 2s and 4s.
    """

    delays: Tuple[float, ...] = (1.0, 2.0, 4.0)

    @property
    def max_retries(self) -> int:
        return len(self.delays)

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return len(self.delays) + 1

    def delay_for_attempt(self, index: int) -> float:
        """Delay before retry number `index` (0-based).

        Raises:
            ValueError: If index is outside the schedule
        """
        if not 0 <= index < len(self.delays):
            raise ValueError(f"Retry index {index} outside schedule of {len(self.delays)}")
        return self.delays[index]

    def attempts(self) -> Iterator[RetryAttempt]:
        """Iterate over the scheduled retries."""
        for index, delay in enumerate(self.delays):
            yield RetryAttempt(index=index, delay=delay)

    def is_retryable(self, error: BaseException) -> bool:
        return is_retryable(error)

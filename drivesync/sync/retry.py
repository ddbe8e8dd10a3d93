"""Failure classification and retry policy for sync operations."""

import errno
import logging
import socket
import time
from typing import Callable, Optional, TypeVar

import httpx

from ..exceptions import TaskFatalError, TransientNetworkError
from ..utils import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_NETWORK_RETRY_DELAY,
    DEFAULT_RETRY_DELAY,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NETWORK_ERROR_TYPES = (
    TransientNetworkError,
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)

NETWORK_ERRNOS = {
    errno.ECONNRESET,
    errno.ETIMEDOUT,
    errno.EPIPE,
    errno.ENETUNREACH,
    errno.EHOSTUNREACH,
}


def is_network_error(exc: BaseException) -> bool:
    """Return True for transient transport failures.

    Checks the exception itself and its ``__cause__`` chain, since store
    errors wrap the transport error they were raised from.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, NETWORK_ERROR_TYPES):
            return True
        if isinstance(current, OSError) and current.errno in NETWORK_ERRNOS:
            return True
        if "EAI_AGAIN" in str(current):
            return True
        current = current.__cause__
    return False


class RetryPolicy:
    """Runs an operation until it succeeds or is classified as fatal.

    - Network errors are retried forever with ``network_retry_delay``.
    - Any other error is retried ``max_retries`` times with ``retry_delay``,
      then re-raised as :class:`TaskFatalError`.
    - A :class:`TaskFatalError` raised by the operation is never retried.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        network_retry_delay: float = DEFAULT_NETWORK_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize retry policy.

        Args:
            max_retries: Retries allowed for non-network errors
            retry_delay: Delay between non-network retries in seconds
            network_retry_delay: Delay between network retries in seconds
            sleep: Sleep function (injectable for tests)
        """
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.network_retry_delay = network_retry_delay
        self.sleep = sleep

    def run(self, operation: Callable[[], T], name: str) -> T:
        """Run ``operation`` under this policy.

        Args:
            operation: Zero-argument callable performing the work
            name: Human-readable name used in log messages

        Returns:
            Whatever ``operation`` returns

        Raises:
            TaskFatalError: If non-network retries are exhausted
        """
        attempt = 0
        failures = 0

        while True:
            attempt += 1
            try:
                return operation()
            except TaskFatalError:
                raise
            except Exception as e:
                if is_network_error(e):
                    logger.warning(
                        f'Operation "{name}" failed with network error: {e}. '
                        f"Retrying in {self.network_retry_delay:g}s... "
                        f"(Attempt {attempt})"
                    )
                    self.sleep(self.network_retry_delay)
                    continue

                failures += 1
                if failures > self.max_retries:
                    logger.error(
                        f'Operation "{name}" failed after {self.max_retries} '
                        f"retries for non-network error: {e}"
                    )
                    raise TaskFatalError(f"{name} failed: {e}") from e

                logger.warning(
                    f'Operation "{name}" failed with non-network error: {e}. '
                    f"Retrying in {self.retry_delay:g}s... "
                    f"(Attempt {failures}/{self.max_retries})"
                )
                self.sleep(self.retry_delay)

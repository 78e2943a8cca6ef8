"""Connection retry controller with capped linear backoff and per-attempt timeouts."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from localnet_speed.engine.models import (
    AttemptOutcome,
    ConnectionAttempt,
    RetryConfig,
    SessionState,
)
from localnet_speed.errors import Cancelled, ConnectionFailed, ConnectionTimeout

T = TypeVar("T")

logger = logging.getLogger(__name__)


def is_connect_error(exc: BaseException) -> bool:
    """Check if an exception is a connection-establishment failure worth retrying.

    Retryable errors are those where the peer may simply not be up yet:
    - Connection refused / reset
    - Name resolution failures
    - Network or host unreachable
    - Per-attempt timeouts

    Args:
        exc: The exception to check.

    Returns:
        bool: True if another attempt may succeed.
    """
    if isinstance(exc, ConnectionTimeout):
        return True
    # OSError covers ConnectionError, TimeoutError and socket.gaierror
    return isinstance(exc, OSError)


class RetryController:
    """
    Schedules client connection attempts.

    Each attempt is bounded by ``config.attempt_timeout``. After a failed
    attempt the controller waits ``config.calculate_delay(attempt)`` seconds
    and tries again while attempts remain, retries are enabled and
    ``cancel()`` has not been called. The wait is on an ``asyncio.Event``
    so cancellation fires immediately instead of after the delay.

    Args:
        config: RetryConfig instance with retry parameters.
        enabled: When False, the first failure is terminal.
        on_attempt: Called with ``(attempt, max_attempts)`` before each attempt.
        on_state: Called with the new ``SessionState`` on every transition.

    Example:
        ```python
        controller = RetryController(RetryConfig(max_attempts=5))

        reader, writer = await controller.run(
            lambda: asyncio.open_connection("192.168.1.20", 65432)
        )
        ```
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        enabled: bool = True,
        on_attempt: Callable[[int, int], None] | None = None,
        on_state: Callable[[SessionState], None] | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._enabled = enabled
        self._on_attempt = on_attempt
        self._on_state = on_state
        self._cancel_event = asyncio.Event()
        self._current: ConnectionAttempt | None = None
        self._attempt_count = 0

    @property
    def max_attempts(self) -> int:
        """Total number of attempts including the initial one."""
        return self._config.max_attempts

    @property
    def attempt_count(self) -> int:
        """Number of attempts started so far."""
        return self._attempt_count

    @property
    def current_attempt(self) -> ConnectionAttempt | None:
        """The attempt in progress or most recently resolved."""
        return self._current

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel()`` has been called."""
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop scheduling attempts and wake any pending backoff wait."""
        self._cancel_event.set()

    def _set_state(self, state: SessionState) -> None:
        if self._on_state is not None:
            self._on_state(state)

    async def _wait_before_retry(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless cancelled first.

        Raises:
            Cancelled: If ``cancel()`` is called during the wait.
        """
        self._set_state(SessionState.RETRY_WAITING)
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise Cancelled("Cancelled while waiting to retry")

    async def _attempt(self, connect: Callable[[], Awaitable[T]], ordinal: int) -> T:
        """Race one connect call against the timeout and ``cancel()``.

        Raises:
            ConnectionTimeout: If the attempt is not ready within ``attempt_timeout``.
            Cancelled: If ``cancel()`` is called while the attempt is in flight.
        """
        connect_task = asyncio.ensure_future(connect())
        cancel_task = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {connect_task, cancel_task},
                timeout=self._config.attempt_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_task.cancel()
            if not connect_task.done():
                connect_task.cancel()

        if connect_task in done:
            return connect_task.result()
        if cancel_task in done:
            raise Cancelled()
        raise ConnectionTimeout(ordinal, self._config.attempt_timeout)

    async def run(self, connect: Callable[[], Awaitable[T]]) -> T:
        """Run ``connect`` until it succeeds or attempts are exhausted.

        Args:
            connect: Callable returning a fresh connection coroutine per attempt.

        Returns:
            T: Result of the first successful attempt.

        Raises:
            ConnectionFailed: If all attempts failed or retries are disabled.
            Cancelled: If ``cancel()`` was called.
        """
        delay = 0.0

        while True:
            if self.cancelled:
                raise Cancelled()

            self._attempt_count += 1
            ordinal = self._attempt_count
            attempt = ConnectionAttempt(ordinal=ordinal, delay=delay)
            self._current = attempt

            if self._on_attempt is not None:
                self._on_attempt(ordinal, self._config.max_attempts)
            self._set_state(SessionState.CONNECTING)
            logger.debug(f"Connection attempt {ordinal}/{self._config.max_attempts}")

            try:
                result = await self._attempt(connect, ordinal)
            except Cancelled:
                raise
            except ConnectionTimeout as exc:
                error: BaseException = exc
                attempt.outcome = AttemptOutcome.TIMED_OUT
            except Exception as exc:
                if not is_connect_error(exc):
                    attempt.outcome = AttemptOutcome.FAILED
                    attempt.error = exc
                    raise
                error = exc
                attempt.outcome = AttemptOutcome.FAILED
            else:
                attempt.outcome = AttemptOutcome.READY
                return result

            attempt.error = error
            self._set_state(SessionState.FAILED)

            if self.cancelled:
                raise Cancelled()

            if not self._enabled or ordinal >= self._config.max_attempts:
                if self._enabled:
                    self._set_state(SessionState.EXHAUSTED)
                logger.error(f"Giving up after {ordinal} attempt(s): {error}")
                raise ConnectionFailed(ordinal, error, retry_enabled=self._enabled) from error

            delay = self._config.calculate_delay(ordinal)
            logger.warning(
                f"Attempt {ordinal}/{self._config.max_attempts} failed: {error}. "
                f"Retrying in {delay:.1f}s"
            )
            await self._wait_before_retry(delay)


__all__ = [
    "RetryConfig",
    "RetryController",
    "is_connect_error",
]

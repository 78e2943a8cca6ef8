"""Connecting side of a throughput test.

The client connects through a RetryController, sends the configured payload
and reports exactly one outcome per ``run()``.
"""

from __future__ import annotations

import asyncio
import logging

from localnet_speed.engine.base import BaseObserver, SessionObserver
from localnet_speed.engine.models import (
    RetryConfig,
    Role,
    SessionConfig,
    SessionState,
    TransferResult,
)
from localnet_speed.engine.stream import ByteStreamEngine
from localnet_speed.errors import Cancelled, ConfigError, SpeedTestError, TransferIOError
from localnet_speed.patterns.counter import AtomicCounter
from localnet_speed.patterns.retry import RetryController

logger = logging.getLogger(__name__)


class ClientSession:
    """Sends a payload to a server and measures the transfer.

    State machine:
        IDLE -> CONNECTING -> READY -> SENDING -> COMPLETED
        CONNECTING -> FAILED -> (RETRY_WAITING -> CONNECTING)* -> EXHAUSTED
        any state -> CANCELLED

    Connection failures are retried by the RetryController; failures during
    data transfer are reported as-is.

    Args:
        config: Session configuration with ``role=Role.CLIENT``.
        observer: Receiver of retry, progress and completion events.
        retry_config: Retry policy (defaults to 50 attempts, 2s + 0.5s steps, 10s cap).
        stream: Byte stream engine used for the transfer.

    Raises:
        ConfigError: If the configuration is not a client configuration.

    Example:
        ```python
        config = SessionConfig(role=Role.CLIENT, host="192.168.1.20", payload_size_mb=100)
        result = await ClientSession(config).run()
        print(f"{result.rate_mb_per_s:.2f} MB/s ({result.evaluation.rating.value})")
        ```
    """

    def __init__(
        self,
        config: SessionConfig,
        observer: SessionObserver | None = None,
        *,
        retry_config: RetryConfig | None = None,
        stream: ByteStreamEngine | None = None,
    ) -> None:
        if config.role is not Role.CLIENT:
            raise ConfigError("ClientSession requires a client configuration")

        self._config = config
        self._observer = observer or BaseObserver()
        self._stream = stream or ByteStreamEngine()
        self._retry = RetryController(
            retry_config,
            enabled=config.retry_enabled,
            on_attempt=self._observer.on_retry,
            on_state=self._set_state,
        )
        self._state = SessionState.IDLE
        self._started = False
        self._cancelled = False
        self._completed = False
        self._writer: asyncio.StreamWriter | None = None
        self._sent = AtomicCounter()

    @property
    def role(self) -> Role:
        """Always ``Role.CLIENT``."""
        return Role.CLIENT

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def attempt_count(self) -> int:
        """Number of connection attempts started."""
        return self._retry.attempt_count

    @property
    def bytes_transferred(self) -> int:
        """Payload bytes sent so far."""
        return self._sent.get()

    def _set_state(self, state: SessionState) -> None:
        if self._cancelled and state is not SessionState.CANCELLED:
            return
        if state is not self._state:
            logger.debug(f"Client state {self._state.value} -> {state.value}")
        self._state = state

    async def run(self) -> TransferResult:
        """Connect, send the payload and return the measurement.

        Returns:
            TransferResult for the completed transfer.

        Raises:
            ConnectionFailed: If no connection could be established.
            TransferIOError: If the transfer failed after connecting.
            Cancelled: If ``cancel()`` was called.
            RuntimeError: If the session was already run.
        """
        if self._started:
            raise RuntimeError("session already started")
        self._started = True

        try:
            result = await self._connect_and_send()
        except SpeedTestError as exc:
            if self._cancelled and not isinstance(exc, Cancelled):
                cancelled = Cancelled()
                self._complete(cancelled)
                raise cancelled from exc
            self._complete(exc)
            raise
        except asyncio.CancelledError:
            self._cancelled = True
            self._complete(Cancelled())
            raise
        finally:
            self._discard_connection()

        self._complete(result)
        return result

    def cancel(self) -> None:
        """Stop retrying and abort the live connection, if any."""
        if self._cancelled:
            return
        self._cancelled = True
        self._retry.cancel()
        if self._writer is not None:
            self._writer.transport.abort()
        logger.info("Client cancelled")

    async def _open_connection(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Open a fresh connection, discarding the one from a previous attempt."""
        self._discard_connection()
        reader, writer = await asyncio.open_connection(self._config.host, self._config.port)
        self._writer = writer
        return reader, writer

    def _discard_connection(self) -> None:
        if self._writer is not None:
            self._writer.transport.abort()
            self._writer = None

    async def _connect_and_send(self) -> TransferResult:
        logger.info(
            f"Connecting to {self._config.host}:{self._config.port} "
            f"to send {self._config.payload_size_mb} MB"
        )
        reader, writer = await self._retry.run(self._open_connection)
        if self._cancelled:
            raise Cancelled()

        self._set_state(SessionState.READY)
        started_at = self._stream.now()
        logger.info(f"Connected after {self._retry.attempt_count} attempt(s)")

        self._set_state(SessionState.SENDING)
        result = await self._stream.send(
            reader,
            writer,
            self._config.payload_bytes,
            started_at=started_at,
            on_progress=self._observer.on_progress,
            is_cancelled=lambda: self._cancelled,
            counter=self._sent,
        )
        writer.close()
        if self._cancelled:
            raise Cancelled()

        logger.info(
            f"Sent {result.transferred_bytes} bytes in {result.duration:.2f}s "
            f"({result.rate_mb_per_s:.2f} MB/s)"
        )
        return result

    def _complete(self, outcome: TransferResult | SpeedTestError) -> None:
        """Deliver the single terminal outcome of this run."""
        if self._completed:
            return
        self._completed = True

        if isinstance(outcome, TransferResult):
            self._set_state(SessionState.COMPLETED)
        elif isinstance(outcome, Cancelled):
            self._set_state(SessionState.CANCELLED)
        elif isinstance(outcome, TransferIOError):
            logger.error(f"Transfer failed: {outcome}")
            self._set_state(SessionState.FAILED)
        elif self._state not in (SessionState.FAILED, SessionState.EXHAUSTED):
            self._set_state(SessionState.FAILED)

        self._observer.on_complete(outcome)


__all__ = ["ClientSession"]

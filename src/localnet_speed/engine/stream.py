"""Chunked send and receive loops over an established TCP stream.

The wire format is a bare byte stream: the sender writes filler bytes in
chunks and half-closes its side; the receiver reads until end-of-stream and
closes its side, which the sender takes as acknowledgment.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from localnet_speed.engine.models import DEFAULT_CHUNK_SIZE, TransferResult
from localnet_speed.errors import Cancelled, TransferIOError
from localnet_speed.patterns.counter import AtomicCounter

logger = logging.getLogger(__name__)

FILLER_BYTE = b"X"

ProgressCallback = Callable[[int], None]
CancelCheck = Callable[[], bool]


def _never_cancelled() -> bool:
    return False


class ByteStreamEngine:
    """Moves payload bytes over a connected ``asyncio`` stream pair.

    Args:
        chunk_size: Bytes per send/receive operation (default: 1 MiB).
        eof_timeout: Seconds the sender waits for the receiver to acknowledge
            end-of-stream by closing its side (default: 30.0).
        clock: Source of unix timestamps for the result.

    Raises:
        ValueError: If chunk_size is less than 1 or eof_timeout is not positive.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        eof_timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if eof_timeout <= 0:
            raise ValueError("eof_timeout must be positive")

        self._chunk_size = chunk_size
        self._eof_timeout = eof_timeout
        self._clock = clock
        self._filler = FILLER_BYTE * chunk_size

    @property
    def chunk_size(self) -> int:
        """Bytes per send/receive operation."""
        return self._chunk_size

    def now(self) -> float:
        """Current timestamp from the engine's clock."""
        return self._clock()

    async def send(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        target_bytes: int,
        *,
        started_at: float,
        on_progress: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
        counter: AtomicCounter | None = None,
    ) -> TransferResult:
        """Send ``target_bytes`` filler bytes, then signal end-of-stream.

        Args:
            reader: Reader side of the connection, used to observe the peer's close.
            writer: Writer side of the connection.
            target_bytes: Exact number of payload bytes to send.
            started_at: Timestamp when the connection became ready.
            on_progress: Called with the cumulative byte count after every chunk.
            is_cancelled: Checked before every chunk.
            counter: Counter receiving the running total (a fresh one by default).

        Returns:
            TransferResult once the peer has acknowledged end-of-stream.

        Raises:
            TransferIOError: If a write fails or end-of-stream is not acknowledged.
            Cancelled: If ``is_cancelled`` returns True.
        """
        sent = counter if counter is not None else AtomicCounter()
        cancelled = is_cancelled or _never_cancelled
        view = memoryview(self._filler)

        try:
            while (current := sent.get()) < target_bytes:
                if cancelled():
                    raise Cancelled()
                this_size = min(target_bytes - current, self._chunk_size)
                writer.write(view[:this_size])
                await writer.drain()
                total = sent.add_and_get(this_size)
                if on_progress is not None:
                    on_progress(total)

            if cancelled():
                raise Cancelled()
            if writer.can_write_eof():
                writer.write_eof()
            await writer.drain()
            await self._await_peer_close(reader)
        except OSError as exc:
            raise TransferIOError(sent.get(), exc, peer=_peer_name(writer)) from exc

        ended_at = self._clock()
        logger.debug(f"Sent {sent.get()} bytes, end-of-stream acknowledged")
        return TransferResult(
            transferred_bytes=sent.get(),
            started_at=started_at,
            ended_at=ended_at,
            peer=_peer_name(writer),
        )

    async def _await_peer_close(self, reader: asyncio.StreamReader) -> None:
        """Wait until the peer closes its side of the connection.

        Raises:
            OSError: If the peer does not close within ``eof_timeout``.
        """
        try:
            async with asyncio.timeout(self._eof_timeout):
                while await reader.read(self._chunk_size):
                    pass
        except TimeoutError:
            raise TimeoutError(
                f"peer did not acknowledge end-of-stream within {self._eof_timeout:g}s"
            ) from None

    async def receive(
        self,
        reader: asyncio.StreamReader,
        *,
        started_at: float,
        on_progress: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
        counter: AtomicCounter | None = None,
        peer: str | None = None,
    ) -> TransferResult:
        """Read until end-of-stream, counting every byte.

        Args:
            reader: Reader side of the connection.
            started_at: Timestamp when the connection became ready.
            on_progress: Called with the cumulative byte count after every read.
            is_cancelled: Checked before every read.
            counter: Counter receiving the running total (a fresh one by default).
            peer: Remote address recorded on the result.

        Returns:
            TransferResult once end-of-stream is observed.

        Raises:
            TransferIOError: If a read fails.
            Cancelled: If ``is_cancelled`` returns True.
        """
        received = counter if counter is not None else AtomicCounter()
        cancelled = is_cancelled or _never_cancelled

        try:
            while True:
                if cancelled():
                    raise Cancelled()
                data = await reader.read(self._chunk_size)
                if not data:
                    break
                total = received.add_and_get(len(data))
                if on_progress is not None:
                    on_progress(total)
        except OSError as exc:
            raise TransferIOError(received.get(), exc, peer=peer) from exc

        ended_at = self._clock()
        logger.debug(f"Received {received.get()} bytes before end-of-stream")
        return TransferResult(
            transferred_bytes=received.get(),
            started_at=started_at,
            ended_at=ended_at,
            peer=peer,
        )


def _peer_name(writer: asyncio.StreamWriter) -> str | None:
    """Format the writer's peer address as ``host:port``."""
    peername = writer.get_extra_info("peername")
    if not peername:
        return None
    return f"{peername[0]}:{peername[1]}"


__all__ = [
    "ByteStreamEngine",
    "CancelCheck",
    "FILLER_BYTE",
    "ProgressCallback",
]

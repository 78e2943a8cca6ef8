"""Background-thread runner for throughput sessions.

This module lets synchronous callers (a CLI main thread, a GUI event loop)
drive a session without blocking: the session runs on a private asyncio
event loop inside a ThreadPoolExecutor worker.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from types import TracebackType
from typing import Self

from localnet_speed.engine.base import TransportSession
from localnet_speed.engine.models import SessionState, TransferResult

logger = logging.getLogger(__name__)


class ThreadedSession:
    """Runs a TransportSession on its own event loop in a worker thread.

    ``cancel()`` and ``bytes_transferred`` are safe to call from any thread.
    Observer callbacks are invoked on the worker thread.

    Args:
        session: The session to run. It must not have been started.

    Example:
        >>> runner = ThreadedSession(ClientSession(config, observer))
        >>> runner.start()
        >>> result = runner.wait(timeout=120)
    """

    def __init__(self, session: TransportSession) -> None:
        self._session = session
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="localnet-speed")
        self._future: Future[TransferResult | None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_ready = threading.Event()

    @property
    def session(self) -> TransportSession:
        """The wrapped session."""
        return self._session

    @property
    def state(self) -> SessionState:
        """Current state of the wrapped session."""
        return self._session.state

    @property
    def bytes_transferred(self) -> int:
        """Bytes moved so far, read from the session's shared counter."""
        count: int = getattr(self._session, "bytes_transferred", 0)
        return count

    @property
    def running(self) -> bool:
        """Whether the worker is still running the session."""
        return self._future is not None and not self._future.done()

    def start(self) -> Future[TransferResult | None]:
        """Start the session on the worker thread.

        Returns:
            A Future resolving to the session's ``run()`` result.

        Raises:
            RuntimeError: If the runner was already started.
        """
        if self._future is not None:
            raise RuntimeError("session already started")
        self._future = self._executor.submit(asyncio.run, self._main())
        return self._future

    async def _main(self) -> TransferResult | None:
        self._loop = asyncio.get_running_loop()
        self._loop_ready.set()
        return await self._session.run()

    def cancel(self) -> None:
        """Request cancellation from any thread."""
        if self._future is None or self._future.done():
            return
        self._loop_ready.wait()
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._session.cancel)
        except RuntimeError:
            # Loop closed between the check and the call; the session already finished.
            logger.debug("Session finished before cancellation was delivered")

    def wait(self, timeout: float | None = None) -> TransferResult | None:
        """Block until the session finishes.

        Args:
            timeout: Maximum seconds to wait, None to wait forever.

        Returns:
            The client's TransferResult, or None for a server.

        Raises:
            TimeoutError: If the session is still running after ``timeout``.
            SpeedTestError: The session's terminal failure.
            RuntimeError: If the runner was never started.
        """
        if self._future is None:
            raise RuntimeError("session not started")
        return self._future.result(timeout=timeout)

    def close(self) -> None:
        """Cancel the session if needed and shut down the worker thread."""
        self.cancel()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = ["ThreadedSession"]

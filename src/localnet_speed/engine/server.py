"""Listening side of a throughput test.

The server accepts any number of connections and runs an isolated receive
transfer for each one. A failing connection is reported and torn down while
the listener keeps accepting; only ``cancel()`` stops the server.
"""

from __future__ import annotations

import asyncio
import logging

from localnet_speed.engine.base import BaseObserver, SessionObserver
from localnet_speed.engine.models import Role, SessionConfig, SessionState
from localnet_speed.engine.stream import ByteStreamEngine
from localnet_speed.errors import (
    BindError,
    Cancelled,
    ConfigError,
    FailureKind,
    TransferIOError,
)
from localnet_speed.patterns.counter import AtomicCounter

logger = logging.getLogger(__name__)

ANY_ADDRESS = "0.0.0.0"


class ServerSession:
    """Receives payloads from clients and measures each transfer.

    Each accepted connection gets its own byte counter and start timestamp.
    ``on_complete`` fires once per accepted connection (success, transfer
    failure or cancellation) and once for a bind failure.

    Args:
        config: Session configuration with ``role=Role.SERVER``.
        observer: Receiver of progress, connection and completion events.
        stream: Byte stream engine used for every connection.

    Raises:
        ConfigError: If the configuration is not a server configuration.

    Example:
        ```python
        session = ServerSession(SessionConfig(role=Role.SERVER, port=65432), observer)
        await session.start()
        print(f"Listening on port {session.bound_port}")
        await session.run()
        ```
    """

    def __init__(
        self,
        config: SessionConfig,
        observer: SessionObserver | None = None,
        *,
        stream: ByteStreamEngine | None = None,
    ) -> None:
        if config.role is not Role.SERVER:
            raise ConfigError("ServerSession requires a server configuration")

        self._config = config
        self._observer = observer or BaseObserver()
        self._stream = stream or ByteStreamEngine()
        self._state = SessionState.IDLE
        self._server: asyncio.Server | None = None
        self._started = False
        self._cancelled = False
        self._stopped = asyncio.Event()
        self._connection_count = AtomicCounter()
        self._received_total = AtomicCounter()
        self._active: dict[asyncio.Task[None], asyncio.StreamWriter] = {}

    @property
    def role(self) -> Role:
        """Always ``Role.SERVER``."""
        return Role.SERVER

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def bound_port(self) -> int | None:
        """Port the listener is bound to, None before ``start()``."""
        if self._server is None or not self._server.sockets:
            return None
        port: int = self._server.sockets[0].getsockname()[1]
        return port

    @property
    def connection_count(self) -> int:
        """Number of connections accepted so far."""
        return self._connection_count.get()

    @property
    def active_transfers(self) -> int:
        """Number of transfers currently in progress."""
        return len(self._active)

    @property
    def bytes_transferred(self) -> int:
        """Bytes received across all connections."""
        return self._received_total.get()

    async def start(self) -> None:
        """Bind the listener and start accepting connections.

        Raises:
            BindError: If the port cannot be bound. The error is also reported
                through ``on_complete``; the session stays inert afterwards.
            RuntimeError: If the session was already started.
        """
        if self._started:
            raise RuntimeError("session already started")
        self._started = True

        host = self._config.host or ANY_ADDRESS
        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=host,
                port=self._config.port,
                reuse_address=True,
            )
        except OSError as exc:
            error = BindError(self._config.port, exc)
            self._state = SessionState.FAILED
            self._stopped.set()
            logger.error(f"Server failed to start: {error}")
            self._observer.on_complete(error)
            raise error from exc

        if self._cancelled:
            self._server.close()
            return

        self._state = SessionState.LISTENING
        logger.info(f"Server listening on {host}:{self.bound_port}")

    async def run(self) -> None:
        """Start the server if needed and serve until ``cancel()``."""
        if not self._started:
            await self.start()
        try:
            await self._stopped.wait()
        except asyncio.CancelledError:
            self.cancel()
            raise
        await self.wait_closed()

    def cancel(self) -> None:
        """Close the listener and abort every in-flight transfer."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._state is not SessionState.FAILED:
            self._state = SessionState.CANCELLED

        if self._server is not None:
            self._server.close()

        for task, writer in list(self._active.items()):
            writer.transport.abort()
            task.cancel()

        self._stopped.set()
        logger.info("Server cancelled")

    async def wait_closed(self) -> None:
        """Wait until the listener and all connection handlers are gone."""
        tasks = list(self._active)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Run one isolated receive transfer."""
        if self._cancelled:
            writer.transport.abort()
            return

        task = asyncio.current_task()
        if task is None:
            raise RuntimeError("connection handler must run inside a task")
        self._active[task] = writer

        peer = _format_peer(writer.get_extra_info("peername"))
        count = self._connection_count.add_and_get(1)
        logger.info(f"Connection #{count} from {peer}")
        self._observer.on_new_connection(count)

        last_total = 0

        def report_progress(total: int) -> None:
            nonlocal last_total
            self._received_total.add_and_get(total - last_total)
            last_total = total
            self._observer.on_progress(total)

        try:
            result = await self._stream.receive(
                reader,
                started_at=self._stream.now(),
                on_progress=report_progress,
                is_cancelled=lambda: self._cancelled,
                peer=peer,
            )
            if self._cancelled:
                raise Cancelled()
        except TransferIOError as exc:
            if self._cancelled:
                self._observer.on_complete(Cancelled())
            else:
                if exc.kind is FailureKind.PEER_RESET:
                    logger.warning(f"Connection #{count} from {peer} reset by peer: {exc}")
                else:
                    logger.error(f"Connection #{count} from {peer} failed: {exc}")
                self._observer.on_complete(exc)
        except Cancelled as exc:
            self._observer.on_complete(exc)
        except asyncio.CancelledError:
            self._observer.on_complete(Cancelled())
            raise
        else:
            logger.info(
                f"Connection #{count} from {peer}: {result.transferred_bytes} bytes "
                f"in {result.duration:.2f}s ({result.rate_mb_per_s:.2f} MB/s)"
            )
            self._observer.on_complete(result)
        finally:
            self._active.pop(task, None)
            # Closing our side acknowledges the client's end-of-stream.
            writer.close()


def _format_peer(peername: object) -> str | None:
    """Format a socket peername tuple as ``host:port``."""
    if isinstance(peername, tuple) and len(peername) >= 2:
        return f"{peername[0]}:{peername[1]}"
    return None


__all__ = ["ServerSession"]

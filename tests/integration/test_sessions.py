"""Integration tests for server and client sessions over loopback.

Tests verify:
- A full 100 MB transfer is measured on both sides
- Retry exhaustion and cancellation during the backoff wait
- One failing connection does not disturb the server or later clients
- Bind failures are reported once and leave the session inert
"""

from __future__ import annotations

import asyncio
import socket
import struct

import pytest

from localnet_speed.engine import ClientSession, ServerSession
from localnet_speed.engine.models import (
    BYTES_PER_MB,
    RetryConfig,
    Role,
    SessionConfig,
    SessionState,
    TransferResult,
)
from localnet_speed.errors import (
    BindError,
    Cancelled,
    ConnectionFailed,
    FailureKind,
    SpeedTestError,
    TransferIOError,
)
from localnet_speed.evaluation import Rating

pytestmark = pytest.mark.integration


@pytest.fixture
def server_observer(make_observer):
    """Observer attached to the server fixture."""
    return make_observer()


@pytest.fixture
async def server(server_observer):
    """Running server on an ephemeral loopback port."""
    session = ServerSession(
        SessionConfig(role=Role.SERVER, host="127.0.0.1", port=0), server_observer
    )
    await session.start()

    yield session

    session.cancel()
    await session.wait_closed()


def _client(port: int, size_mb: int = 1, *, retry: bool = True) -> SessionConfig:
    return SessionConfig(
        role=Role.CLIENT,
        host="127.0.0.1",
        port=port,
        payload_size_mb=size_mb,
        retry_enabled=retry,
    )


class TestFullTransfer:
    """A complete client to server transfer."""

    @pytest.mark.asyncio
    async def test_hundred_megabytes_without_retry(
        self, server, server_observer, observer, outcomes_waiter
    ) -> None:
        """Both sides should measure exactly 100 MB."""
        client = ClientSession(_client(server.bound_port, 100, retry=False), observer)

        result = await client.run()

        assert result.transferred_bytes == 104_857_600
        assert result.rate_mb_per_s > 0
        assert result.evaluation.rating is Rating.EXCELLENT
        assert result.ended_at >= result.started_at
        assert client.state is SessionState.COMPLETED
        assert client.bytes_transferred == 104_857_600
        assert client.attempt_count == 1

        # Exactly one terminal callback, after every progress report.
        assert observer.outcomes == [result]
        assert observer.retries == [(1, 50)]
        assert observer.progress == sorted(set(observer.progress))
        assert observer.progress[-1] == 104_857_600

        await outcomes_waiter(server_observer, 1)
        server_result = server_observer.outcomes[0]
        assert isinstance(server_result, TransferResult)
        assert server_result.transferred_bytes == 104_857_600
        assert server_result.peer is not None
        assert server_observer.connections == [1]
        assert server_observer.progress[-1] == 104_857_600
        assert server.bytes_transferred == 104_857_600

    @pytest.mark.asyncio
    async def test_sequential_clients(
        self, server, server_observer, make_observer, outcomes_waiter
    ) -> None:
        """A server should measure each connection independently."""
        for size_mb in (1, 3):
            await ClientSession(_client(server.bound_port, size_mb), make_observer()).run()

        await outcomes_waiter(server_observer, 2)
        sizes = [outcome.transferred_bytes for outcome in server_observer.outcomes]
        assert sizes == [1 * BYTES_PER_MB, 3 * BYTES_PER_MB]
        assert server_observer.connections == [1, 2]
        assert server.connection_count == 2
        assert server.state is SessionState.LISTENING

    @pytest.mark.asyncio
    async def test_concurrent_clients(
        self, server, server_observer, make_observer, outcomes_waiter
    ) -> None:
        """Concurrent transfers should each keep their own byte count."""
        clients = [
            ClientSession(_client(server.bound_port, size_mb), make_observer())
            for size_mb in (2, 4)
        ]

        results = await asyncio.gather(*(client.run() for client in clients))

        assert [r.transferred_bytes for r in results] == [2 * BYTES_PER_MB, 4 * BYTES_PER_MB]
        await outcomes_waiter(server_observer, 2)
        sizes = sorted(outcome.transferred_bytes for outcome in server_observer.outcomes)
        assert sizes == [2 * BYTES_PER_MB, 4 * BYTES_PER_MB]

    @pytest.mark.asyncio
    async def test_run_twice_rejected(self, server) -> None:
        """A client session is single-use."""
        client = ClientSession(_client(server.bound_port))
        await client.run()

        with pytest.raises(RuntimeError):
            await client.run()


class TestRetry:
    """Connection retries against a port with nothing listening."""

    @pytest.mark.asyncio
    async def test_exhaustion(self, free_port, fast_retry_config, observer) -> None:
        """The client should give up after max_attempts with one failure callback."""
        client = ClientSession(_client(free_port), observer, retry_config=fast_retry_config)

        with pytest.raises(ConnectionFailed) as exc_info:
            await client.run()

        assert exc_info.value.attempts == 3
        assert exc_info.value.kind is FailureKind.REFUSED
        assert observer.retries == [(1, 3), (2, 3), (3, 3)]
        assert observer.outcomes == [exc_info.value]
        assert observer.progress == []
        assert client.state is SessionState.EXHAUSTED

    @pytest.mark.asyncio
    async def test_retry_disabled(self, free_port, fast_retry_config, observer) -> None:
        """Without retries a single refusal should be terminal."""
        client = ClientSession(
            _client(free_port, retry=False), observer, retry_config=fast_retry_config
        )

        with pytest.raises(ConnectionFailed) as exc_info:
            await client.run()

        assert exc_info.value.retry_enabled is False
        assert observer.retries == [(1, 3)]
        assert len(observer.outcomes) == 1
        assert client.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_connects_once_server_appears(self, free_port, make_observer) -> None:
        """A client started before the server should connect on a later attempt."""
        retry = RetryConfig(max_attempts=50, base_delay=0.05, delay_increment=0.0, max_delay=0.05)
        observer = make_observer()
        client = ClientSession(_client(free_port), observer, retry_config=retry)
        server = ServerSession(SessionConfig(role=Role.SERVER, host="127.0.0.1", port=free_port))

        client_task = asyncio.create_task(client.run())
        await asyncio.sleep(0.2)
        await server.start()
        try:
            result = await asyncio.wait_for(client_task, timeout=10.0)
        finally:
            server.cancel()
            await server.wait_closed()

        assert result.transferred_bytes == BYTES_PER_MB
        assert client.attempt_count >= 2
        assert observer.outcomes == [result]

    @pytest.mark.asyncio
    async def test_cancel_during_retry_wait(self, free_port, observer) -> None:
        """Cancelling during a long backoff should end the run promptly."""
        retry = RetryConfig(max_attempts=50, base_delay=10.0, max_delay=10.0)
        client = ClientSession(_client(free_port), observer, retry_config=retry)

        loop = asyncio.get_running_loop()
        loop.call_later(0.2, client.cancel)
        started = loop.time()

        with pytest.raises(Cancelled):
            await client.run()

        assert loop.time() - started < 5.0
        assert client.state is SessionState.CANCELLED
        assert client.attempt_count == 1
        assert len(observer.outcomes) == 1
        assert isinstance(observer.outcomes[0], Cancelled)


class TestCancellation:
    """Cancellation while bytes are moving."""

    @pytest.mark.asyncio
    async def test_client_cancel_mid_transfer(self, server, make_observer) -> None:
        """A client cancelled during sending should report Cancelled once."""
        client: ClientSession

        class CancelAfterProgress(make_observer):  # type: ignore[misc, valid-type]
            def on_progress(self, total_bytes: int) -> None:
                super().on_progress(total_bytes)
                if total_bytes >= 5 * BYTES_PER_MB:
                    client.cancel()

        observer = CancelAfterProgress()
        client = ClientSession(_client(server.bound_port, 1000), observer)

        with pytest.raises(Cancelled):
            await client.run()

        assert client.state is SessionState.CANCELLED
        assert len(observer.outcomes) == 1
        assert isinstance(observer.outcomes[0], Cancelled)
        assert client.bytes_transferred < 1000 * BYTES_PER_MB

    @pytest.mark.asyncio
    async def test_server_cancel_aborts_transfers(self, make_observer) -> None:
        """Cancelling the server should abort live connections and stop run()."""
        server_observer = make_observer()
        server = ServerSession(
            SessionConfig(role=Role.SERVER, host="127.0.0.1", port=0), server_observer
        )
        await server.start()
        server_task = asyncio.create_task(server.run())

        class CancelServerOnProgress(make_observer):  # type: ignore[misc, valid-type]
            def on_progress(self, total_bytes: int) -> None:
                super().on_progress(total_bytes)
                if total_bytes >= 5 * BYTES_PER_MB:
                    server.cancel()

        client_observer = CancelServerOnProgress()
        client = ClientSession(_client(server.bound_port, 1000, retry=False), client_observer)

        with pytest.raises(SpeedTestError):
            await client.run()
        await asyncio.wait_for(server_task, timeout=5.0)

        assert server.state is SessionState.CANCELLED
        assert server.active_transfers == 0
        assert len(server_observer.outcomes) == 1
        assert isinstance(server_observer.outcomes[0], Cancelled)
        assert len(client_observer.outcomes) == 1

    @pytest.mark.asyncio
    async def test_idle_server_cancel(self) -> None:
        """An idle server should stop when cancelled."""
        server = ServerSession(SessionConfig(role=Role.SERVER, host="127.0.0.1", port=0))
        task = asyncio.create_task(server.run())
        await asyncio.sleep(0.05)

        server.cancel()

        assert await asyncio.wait_for(task, timeout=5.0) is None
        assert server.state is SessionState.CANCELLED


class TestServerIsolation:
    """Failures on one connection must not affect others."""

    @pytest.mark.asyncio
    async def test_reset_connection_does_not_stop_server(
        self, server, server_observer, make_observer, outcomes_waiter
    ) -> None:
        """A client reset mid-read should fail only that connection."""
        _, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
        local = "{}:{}".format(*writer.get_extra_info("sockname")[:2])
        writer.write(b"X" * 65536)
        await writer.drain()

        # Wait until the server has read everything and is blocked on the next read.
        async with asyncio.timeout(5.0):
            while not server_observer.progress or server_observer.progress[-1] < 65536:
                await asyncio.sleep(0.01)

        # Zero linger turns the close into a reset, before any end-of-stream.
        sock = writer.get_extra_info("socket")
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        writer.transport.abort()

        await outcomes_waiter(server_observer, 1)
        first = server_observer.outcomes[0]
        assert isinstance(first, TransferIOError)
        assert first.kind is FailureKind.PEER_RESET
        assert first.transferred_bytes == 65536
        assert first.peer == local
        assert server.state is SessionState.LISTENING
        assert server.active_transfers == 0

        result = await ClientSession(_client(server.bound_port, 2), make_observer()).run()

        await outcomes_waiter(server_observer, 2)
        second = server_observer.outcomes[1]
        assert isinstance(second, TransferResult)
        assert second.transferred_bytes == result.transferred_bytes == 2 * BYTES_PER_MB
        assert server.connection_count == 2


class TestBindFailure:
    """Listener bind failures."""

    @pytest.mark.asyncio
    async def test_port_in_use(self, observer) -> None:
        """Binding an occupied port should fail with ADDRESS_IN_USE."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen()
            port = blocker.getsockname()[1]

            session = ServerSession(
                SessionConfig(role=Role.SERVER, host="127.0.0.1", port=port), observer
            )
            with pytest.raises(BindError) as exc_info:
                await session.run()

        assert exc_info.value.port == port
        assert exc_info.value.kind is FailureKind.ADDRESS_IN_USE
        assert observer.outcomes == [exc_info.value]
        assert session.state is SessionState.FAILED
        assert session.bound_port is None

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, server) -> None:
        """A server can only be started once."""
        with pytest.raises(RuntimeError):
            await server.start()

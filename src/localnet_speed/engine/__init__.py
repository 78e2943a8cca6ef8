"""Throughput sessions and the transfer engine they share."""

from __future__ import annotations

from localnet_speed.engine.base import BaseObserver, Outcome, SessionObserver, TransportSession
from localnet_speed.engine.client import ClientSession
from localnet_speed.engine.models import (
    AttemptOutcome,
    ConnectionAttempt,
    RetryConfig,
    Role,
    SessionConfig,
    SessionState,
    TransferResult,
)
from localnet_speed.engine.server import ServerSession
from localnet_speed.engine.stream import ByteStreamEngine
from localnet_speed.engine.threaded import ThreadedSession


def create_session(
    config: SessionConfig,
    observer: SessionObserver | None = None,
    *,
    retry_config: RetryConfig | None = None,
    stream: ByteStreamEngine | None = None,
) -> ServerSession | ClientSession:
    """Build the session matching ``config.role``.

    Args:
        config: Validated session configuration.
        observer: Receiver of session events.
        retry_config: Client retry policy; ignored for servers.
        stream: Byte stream engine override (chunk size, clock).

    Returns:
        A ServerSession or ClientSession.
    """
    if config.role is Role.SERVER:
        return ServerSession(config, observer, stream=stream)
    return ClientSession(config, observer, retry_config=retry_config, stream=stream)


__all__ = [
    "AttemptOutcome",
    "BaseObserver",
    "ByteStreamEngine",
    "ClientSession",
    "ConnectionAttempt",
    "Outcome",
    "RetryConfig",
    "Role",
    "ServerSession",
    "SessionConfig",
    "SessionObserver",
    "SessionState",
    "ThreadedSession",
    "TransferResult",
    "TransportSession",
    "create_session",
]

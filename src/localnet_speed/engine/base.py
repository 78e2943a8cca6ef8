"""Base protocols for throughput sessions.

This module defines the TransportSession protocol that the server and client
sessions follow, and the SessionObserver protocol through which sessions
report progress and outcomes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from localnet_speed.engine.models import Role, SessionState, TransferResult
from localnet_speed.errors import SpeedTestError

Outcome = TransferResult | SpeedTestError


@runtime_checkable
class SessionObserver(Protocol):
    """Receiver of session notifications.

    All methods are called from the event loop running the session. For one
    transfer, ``on_progress`` totals are strictly increasing and
    ``on_complete`` comes last, exactly once.
    """

    def on_progress(self, total_bytes: int) -> None:
        """Cumulative bytes moved by the current transfer."""
        ...

    def on_new_connection(self, count: int) -> None:
        """Server only: a connection was accepted; ``count`` starts at 1."""
        ...

    def on_retry(self, attempt: int, max_attempts: int) -> None:
        """Client only: connection attempt ``attempt`` is about to start."""
        ...

    def on_complete(self, outcome: Outcome) -> None:
        """Terminal outcome of a transfer, or a fatal session failure."""
        ...


class BaseObserver:
    """SessionObserver with no-op methods, meant to be subclassed."""

    def on_progress(self, total_bytes: int) -> None:
        pass

    def on_new_connection(self, count: int) -> None:
        pass

    def on_retry(self, attempt: int, max_attempts: int) -> None:
        pass

    def on_complete(self, outcome: Outcome) -> None:
        pass


@runtime_checkable
class TransportSession(Protocol):
    """Protocol defining the interface for throughput sessions.

    Both the server and client sessions conform to this protocol.
    The @runtime_checkable decorator enables isinstance() checks for protocol conformance.

    Example:
        >>> from localnet_speed.engine import ClientSession, SessionConfig, Role
        >>> config = SessionConfig(role=Role.CLIENT, host="127.0.0.1")
        >>> isinstance(ClientSession(config), TransportSession)
        True
    """

    @property
    def role(self) -> Role:
        """Transport role of the session."""
        ...

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        ...

    async def run(self) -> TransferResult | None:
        """Run the session until it finishes or is cancelled.

        Returns:
            The client's TransferResult; None for a server, which reports each
            transfer through its observer.
        """
        ...

    def cancel(self) -> None:
        """Request cancellation and tear down live connections."""
        ...

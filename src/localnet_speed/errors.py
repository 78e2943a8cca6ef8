"""Failure taxonomy for throughput sessions.

Every terminal failure a session can report is a ``SpeedTestError`` subclass,
so observers can pattern-match on type instead of parsing messages. Low-level
``OSError`` causes are classified by type and errno via ``classify_error``.
"""

from __future__ import annotations

import asyncio
import errno
import socket
from enum import Enum


class FailureKind(str, Enum):
    """Coarse classification of a network failure.

    Attributes:
        PEER_RESET: The peer reset or aborted the connection, or the pipe broke.
        REFUSED: Nothing is listening on the target port.
        TIMEOUT: An operation did not finish within its time window.
        UNREACHABLE: The host or network cannot be reached or resolved.
        ADDRESS_IN_USE: The local port is already bound.
        PERMISSION: The OS refused the operation (firewall, privileged port).
        CANCELLED: The caller requested cancellation.
        OTHER: Anything else.
    """

    PEER_RESET = "peer_reset"
    REFUSED = "refused"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    ADDRESS_IN_USE = "address_in_use"
    PERMISSION = "permission"
    CANCELLED = "cancelled"
    OTHER = "other"


_UNREACHABLE_ERRNOS = frozenset(
    code
    for code in (
        getattr(errno, "EHOSTUNREACH", None),
        getattr(errno, "ENETUNREACH", None),
        getattr(errno, "EHOSTDOWN", None),
        getattr(errno, "ENETDOWN", None),
    )
    if code is not None
)


def classify_error(exc: BaseException) -> FailureKind:
    """Classify an exception by its type and errno.

    Args:
        exc: The exception to classify.

    Returns:
        FailureKind: The matching failure kind, ``OTHER`` when nothing matches.
    """
    if isinstance(exc, SpeedTestError):
        return exc.kind
    if isinstance(exc, asyncio.CancelledError):
        return FailureKind.CANCELLED
    if isinstance(exc, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return FailureKind.PEER_RESET
    if isinstance(exc, ConnectionRefusedError):
        return FailureKind.REFUSED
    if isinstance(exc, TimeoutError):
        return FailureKind.TIMEOUT
    if isinstance(exc, socket.gaierror):
        return FailureKind.UNREACHABLE
    if isinstance(exc, PermissionError):
        return FailureKind.PERMISSION
    if isinstance(exc, OSError):
        if exc.errno == errno.EADDRINUSE:
            return FailureKind.ADDRESS_IN_USE
        if exc.errno in (errno.EACCES, errno.EPERM):
            return FailureKind.PERMISSION
        if exc.errno in _UNREACHABLE_ERRNOS:
            return FailureKind.UNREACHABLE
    return FailureKind.OTHER


class SpeedTestError(Exception):
    """Base class for all terminal session failures."""

    kind: FailureKind = FailureKind.OTHER


class ConfigError(ValueError):
    """Raised when a session or retry configuration is invalid."""


class BindError(SpeedTestError):
    """Raised when the server cannot bind its listening port."""

    def __init__(self, port: int, cause: OSError) -> None:
        super().__init__(f"Cannot listen on port {port}: {cause}")
        self.port = port
        self.cause = cause
        self.kind = classify_error(cause)


class ConnectionTimeout(SpeedTestError):
    """A single connection attempt did not become ready in time."""

    kind = FailureKind.TIMEOUT

    def __init__(self, attempt: int, timeout: float) -> None:
        super().__init__(f"Attempt {attempt} timed out after {timeout:g}s")
        self.attempt = attempt
        self.timeout = timeout


class ConnectionFailed(SpeedTestError):
    """Raised when the client gives up connecting.

    Attributes:
        attempts: Number of connection attempts made.
        last_error: The error raised by the final attempt.
        retry_enabled: Whether retries were enabled for the session.
    """

    def __init__(
        self,
        attempts: int,
        last_error: BaseException,
        *,
        retry_enabled: bool = True,
    ) -> None:
        if retry_enabled:
            message = f"Connection failed after {attempts} attempts. Last error: {last_error}"
        else:
            message = f"Connection failed (retry disabled): {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.retry_enabled = retry_enabled
        self.kind = classify_error(last_error)


class TransferIOError(SpeedTestError):
    """Raised when I/O fails while payload bytes are moving.

    Attributes:
        transferred_bytes: Bytes moved before the failure.
        cause: The underlying OS error.
        kind: Classification of ``cause``.
        peer: Remote address as ``host:port``, when known.
    """

    def __init__(
        self,
        transferred_bytes: int,
        cause: BaseException,
        *,
        peer: str | None = None,
    ) -> None:
        prefix = f"Transfer with {peer}" if peer else "Transfer"
        super().__init__(f"{prefix} aborted after {transferred_bytes} bytes: {cause}")
        self.transferred_bytes = transferred_bytes
        self.cause = cause
        self.kind = classify_error(cause)
        self.peer = peer


class Cancelled(SpeedTestError):
    """Raised when the caller explicitly cancelled the session."""

    kind = FailureKind.CANCELLED

    def __init__(self, message: str = "Cancelled by caller") -> None:
        super().__init__(message)


__all__ = [
    "BindError",
    "Cancelled",
    "ConfigError",
    "ConnectionFailed",
    "ConnectionTimeout",
    "FailureKind",
    "SpeedTestError",
    "TransferIOError",
    "classify_error",
]

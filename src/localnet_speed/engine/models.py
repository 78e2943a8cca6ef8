"""Domain models for throughput sessions.

This module defines the configuration, result and state types shared by the
server and client sessions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from localnet_speed.errors import ConfigError
from localnet_speed.evaluation import Evaluation, evaluate

DEFAULT_PORT = 65432
DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_PAYLOAD_SIZE_MB = 100
BYTES_PER_MB = 1024 * 1024
MIN_DURATION = 1e-4


class Role(str, Enum):
    """Transport role of a session."""

    SERVER = "server"
    CLIENT = "client"


class SessionState(str, Enum):
    """Lifecycle state of a session.

    Attributes:
        IDLE: Created, not started.
        LISTENING: Server listener is bound and accepting.
        CONNECTING: Client connection attempt in flight.
        READY: Client connection established.
        SENDING: Client payload is being written.
        RETRY_WAITING: Client is waiting out the backoff delay.
        COMPLETED: Client transfer finished successfully.
        FAILED: A fatal error ended the session.
        EXHAUSTED: Client ran out of connection attempts.
        CANCELLED: The caller cancelled the session.
    """

    IDLE = "idle"
    LISTENING = "listening"
    CONNECTING = "connecting"
    READY = "ready"
    SENDING = "sending"
    RETRY_WAITING = "retry_waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class AttemptOutcome(str, Enum):
    """Outcome of a single client connection attempt."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Configuration of one throughput session.

    Attributes:
        role: Server or client.
        port: TCP port to listen on or connect to (default: 65432). A server
            may use 0 to let the OS pick a free port.
        host: Target host for a client; optional bind address for a server.
        payload_size_mb: Payload size in MB sent by a client (default: 100).
        retry_enabled: Whether a client retries failed connection attempts.
    """

    role: Role
    port: int = DEFAULT_PORT
    host: str | None = None
    payload_size_mb: int = DEFAULT_PAYLOAD_SIZE_MB
    retry_enabled: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            try:
                object.__setattr__(self, "role", Role(self.role))
            except ValueError:
                raise ConfigError(f"unknown role: {self.role!r}") from None

        # bool is an int subclass but never a valid port or size.
        for name in ("port", "payload_size_mb"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigError(f"{name} must be an integer, got {value!r}")

        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port must be between 0 and 65535, got {self.port}")

        if self.role is Role.CLIENT:
            if self.port == 0:
                raise ConfigError("client port must be between 1 and 65535")
            if not self.host or not self.host.strip():
                raise ConfigError("client requires a target host")
            if self.payload_size_mb <= 0:
                raise ConfigError(
                    f"payload_size_mb must be a positive integer, got {self.payload_size_mb}"
                )

    @property
    def payload_bytes(self) -> int:
        """Payload size in bytes."""
        return self.payload_size_mb * BYTES_PER_MB


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Configuration for client connection retries with capped linear backoff.

    Implements the formula: delay = min(base_delay + delay_increment × (attempt - 1), max_delay)

    Attributes:
        max_attempts: Total number of connection attempts (default: 50).
        base_delay: Delay after the first failed attempt in seconds (default: 2.0).
        delay_increment: Delay added per further failed attempt (default: 0.5).
        max_delay: Maximum delay cap in seconds (default: 10.0).
        attempt_timeout: Time allowed for one attempt to connect (default: 30.0).
    """

    max_attempts: int = 50
    base_delay: float = 2.0
    delay_increment: float = 0.5
    max_delay: float = 10.0
    attempt_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.delay_increment < 0 or self.max_delay < 0:
            raise ConfigError("retry delays must be non-negative")
        if self.attempt_timeout <= 0:
            raise ConfigError("attempt_timeout must be positive")

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay inserted after a failed attempt.

        Args:
            attempt: The attempt number that just failed (1-indexed).

        Returns:
            Delay in seconds before the next attempt.
        """
        delay: float = self.base_delay + self.delay_increment * (attempt - 1)
        return float(min(delay, self.max_delay))


@dataclass(slots=True)
class ConnectionAttempt:
    """A single client connection attempt.

    Attributes:
        ordinal: Attempt number, starting at 1.
        delay: Seconds waited before this attempt was made.
        outcome: Current outcome of the attempt.
        error: The failure of this attempt, if any.
    """

    ordinal: int
    delay: float = 0.0
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class TransferResult:
    """Measurement of one completed transfer.

    This dataclass is immutable (frozen=True) and uses slots for memory efficiency.

    Attributes:
        transferred_bytes: Number of payload bytes moved.
        started_at: Unix timestamp when the connection became ready.
        ended_at: Unix timestamp when end-of-stream was observed or acknowledged.
        peer: Remote address as ``host:port``, when known.
    """

    transferred_bytes: int
    started_at: float
    ended_at: float
    peer: str | None = None

    def __post_init__(self) -> None:
        if self.transferred_bytes < 0:
            raise ValueError("transferred_bytes must be non-negative")

    @property
    def duration(self) -> float:
        """Elapsed seconds, floored at ``MIN_DURATION``."""
        return max(self.ended_at - self.started_at, MIN_DURATION)

    @property
    def rate_mb_per_s(self) -> float:
        """Average rate in MB/s (1 MB = 1,048,576 bytes)."""
        return self.transferred_bytes / BYTES_PER_MB / self.duration

    @property
    def transferred_mb(self) -> float:
        """Transferred volume in MB."""
        return self.transferred_bytes / BYTES_PER_MB

    @property
    def evaluation(self) -> Evaluation:
        """Gigabit evaluation of ``rate_mb_per_s``."""
        return evaluate(self.rate_mb_per_s)

    def to_dict(self) -> dict[str, object]:
        """Flatten the result and its evaluation for JSON output."""
        evaluation = self.evaluation
        return {
            "transferred_bytes": self.transferred_bytes,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration": self.duration,
            "rate_mb_per_s": self.rate_mb_per_s,
            "peer": self.peer,
            "percent": evaluation.percent,
            "rating": evaluation.rating.value,
            "message": evaluation.message,
            "suggestions": list(evaluation.suggestions),
        }

"""Human-readable text for progress, results and failures."""

from __future__ import annotations

from localnet_speed.engine.models import BYTES_PER_MB, TransferResult
from localnet_speed.errors import (
    BindError,
    Cancelled,
    ConnectionFailed,
    FailureKind,
    SpeedTestError,
    TransferIOError,
)
from localnet_speed.evaluation import THEORETICAL_MB_PER_S, SpeedUnit

# Attempts up to this number are reported individually.
VERBOSE_RETRY_LIMIT = 5
RETRY_LOG_INTERVAL = 5

_KIND_MESSAGES: dict[FailureKind, str] = {
    FailureKind.PEER_RESET: "connection reset by peer",
    FailureKind.REFUSED: "connection refused, check that the server is running",
    FailureKind.TIMEOUT: "connection timed out",
    FailureKind.UNREACHABLE: "host unreachable, check the network connection",
    FailureKind.ADDRESS_IN_USE: "port already in use, try another port",
    FailureKind.PERMISSION: "network permission denied",
    FailureKind.CANCELLED: "cancelled",
}

_PERMISSION_HINTS = (
    "Check the system firewall settings",
    "Try a different port (for example 8080)",
    "Make sure the application is allowed to use the network",
)


def format_progress(total_bytes: int, target_bytes: int | None = None) -> str:
    """Describe transfer progress.

    Args:
        total_bytes: Cumulative bytes moved.
        target_bytes: Payload size for a client, None for a server.

    Returns:
        ``"received 12.5 MB"`` without a target, ``"progress 12.5%"`` with one.
    """
    if not target_bytes:
        return f"received {total_bytes / BYTES_PER_MB:.1f} MB"
    return f"progress {total_bytes / target_bytes * 100:.1f}%"


def format_retry_status(attempt: int, max_attempts: int) -> str:
    """Describe a connection attempt for a status line."""
    if attempt <= 1:
        return "connecting..."
    if attempt <= VERBOSE_RETRY_LIMIT:
        return f"retrying ({attempt}/{max_attempts})..."
    return f"waiting for server ({attempt}/{max_attempts})..."


def should_log_retry(attempt: int) -> bool:
    """Whether an attempt deserves its own log line.

    Early retries are logged individually, later ones every fifth attempt.
    """
    if attempt <= 1:
        return False
    if attempt <= VERBOSE_RETRY_LIMIT:
        return True
    return attempt % RETRY_LOG_INTERVAL == 0


def format_result(result: TransferResult, unit: SpeedUnit = SpeedUnit.MBPS) -> list[str]:
    """Render a result and its Gigabit evaluation as log lines."""
    evaluation = result.evaluation
    speed = unit.convert(result.rate_mb_per_s)
    theoretical = unit.convert(THEORETICAL_MB_PER_S)

    lines = [
        "--- Test result ---",
        f"Total: {result.transferred_mb:.2f} MB",
        f"Duration: {result.duration:.2f} s",
        f"Average: {speed:.2f} {unit.value}",
        "",
        "--- Gigabit evaluation ---",
        f"Measured: {unit.convert(evaluation.rate_mb_per_s):.2f} {unit.value}",
        f"Theoretical: {theoretical:.0f} {unit.value}",
        f"Achieved: {evaluation.percent:.1f} %",
        f"Rating: {evaluation.rating.value}",
        f"Verdict: {evaluation.message}",
    ]
    if evaluation.suggestions:
        lines.append("Suggestions:")
        lines.extend(f"• {suggestion}" for suggestion in evaluation.suggestions)
    return lines


def describe_error(error: BaseException) -> str:
    """One-line description of a session failure."""
    if isinstance(error, Cancelled):
        return "cancelled"
    if isinstance(error, BindError):
        detail = _KIND_MESSAGES.get(error.kind, str(error.cause))
        return f"cannot listen on port {error.port}: {detail}"
    if isinstance(error, ConnectionFailed):
        detail = _KIND_MESSAGES.get(error.kind, str(error.last_error))
        if error.retry_enabled:
            return f"connection failed after {error.attempts} attempts: {detail}"
        return f"connection failed: {detail}"
    if isinstance(error, TransferIOError):
        detail = _KIND_MESSAGES.get(error.kind, str(error.cause))
        if error.peer:
            return (
                f"transfer with {error.peer} aborted after "
                f"{error.transferred_bytes / BYTES_PER_MB:.1f} MB: {detail}"
            )
        return f"transfer aborted after {error.transferred_bytes / BYTES_PER_MB:.1f} MB: {detail}"
    return str(error)


def format_failure(error: SpeedTestError) -> list[str]:
    """Render a failure as log lines, with remediation hints where useful."""
    lines = [f"Error: {describe_error(error)}"]
    if error.kind in (FailureKind.PERMISSION, FailureKind.ADDRESS_IN_USE):
        lines.append("Possible fixes:")
        lines.extend(f"{index}. {hint}" for index, hint in enumerate(_PERMISSION_HINTS, start=1))
    return lines

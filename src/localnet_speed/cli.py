"""Command-line front end.

Usage:
    localnet-speed server [--port N] [--host ADDR]
    localnet-speed client HOST [--port N] [--size-mb N] [--no-retry]

Common options:
    --unit UNIT       Display unit: Mbps, Gbps, MB/s or Kbps (default: Mbps)
    --log-file FILE   Also append the log to FILE
    --json            Print each result as a JSON object on stdout
    --max-attempts N  Client connection attempts (default: 50)
    --verbose         Enable debug logging

Ctrl-C cancels the running session.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Callable, Coroutine
from contextlib import suppress
from typing import Any, TextIO

from localnet_speed import __version__
from localnet_speed.config import AppConfig, load_config
from localnet_speed.engine import BaseObserver, Outcome, Role, ServerSession, create_session
from localnet_speed.engine.models import TransferResult
from localnet_speed.errors import BindError, Cancelled, ConfigError, SpeedTestError
from localnet_speed.evaluation import SpeedUnit
from localnet_speed.netinfo import NOT_FOUND, local_ipv4
from localnet_speed.report import (
    format_failure,
    format_progress,
    format_result,
    format_retry_status,
    should_log_retry,
)
from localnet_speed.sinks import ConsoleSink, FileLogSink, FileLogSinkConfig, LogSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class CliObserver(BaseObserver):
    """Turns session events into log lines, a status line and JSON output.

    Args:
        sinks: Destinations for log lines.
        role: Role of the observed session.
        target_bytes: Client payload size, used for percentages.
        unit: Display unit for rates.
        json_output: Print each TransferResult as JSON on ``stdout``.
        status: Stream for the live status line; only used when it is a TTY.
        stdout: Stream for JSON output.
    """

    def __init__(
        self,
        sinks: list[LogSink],
        *,
        role: Role,
        target_bytes: int | None = None,
        unit: SpeedUnit = SpeedUnit.MBPS,
        json_output: bool = False,
        status: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self._sinks = sinks
        self._role = role
        self._target_bytes = target_bytes
        self._unit = unit
        self._json_output = json_output
        self._status = status
        self._stdout = stdout
        self.outcomes: list[Outcome] = []

    def log(self, *lines: str) -> None:
        """Append lines to every sink."""
        for sink in self._sinks:
            for line in lines:
                sink.append(line)

    def _show_status(self, text: str) -> None:
        if self._status is not None and self._status.isatty():
            self._status.write(f"\r\x1b[2K{text}")
            self._status.flush()

    def _clear_status(self) -> None:
        self._show_status("")

    def on_progress(self, total_bytes: int) -> None:
        self._show_status(format_progress(total_bytes, self._target_bytes))

    def on_new_connection(self, count: int) -> None:
        self.log(f"New connection #{count}")

    def on_retry(self, attempt: int, max_attempts: int) -> None:
        status = format_retry_status(attempt, max_attempts)
        self._show_status(status)
        if should_log_retry(attempt):
            self.log(f"Connection attempt {attempt} ({status})")

    def on_complete(self, outcome: Outcome) -> None:
        self._clear_status()
        self.outcomes.append(outcome)

        if isinstance(outcome, TransferResult):
            self.log(*format_result(outcome, self._unit))
            if self._json_output:
                stdout = self._stdout if self._stdout is not None else sys.stdout
                print(json.dumps(outcome.to_dict()), file=stdout, flush=True)
        elif isinstance(outcome, Cancelled):
            self.log("Test cancelled")
        else:
            self.log(*format_failure(outcome))

        if self._role is Role.SERVER and not isinstance(outcome, (BindError, Cancelled)):
            self.log("--- Server still running, waiting for the next connection ---")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Options default to None so unset values fall back to the environment.
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--port", type=int, default=None, help="TCP port (default: 65432)")
    common.add_argument(
        "--unit",
        default=None,
        help="display unit: Mbps, Gbps, MB/s or Kbps (default: Mbps)",
    )
    common.add_argument("--log-file", default=None, help="append the log to this file")
    common.add_argument("--json", action="store_true", help="print results as JSON on stdout")
    common.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")

    parser = argparse.ArgumentParser(
        prog="localnet-speed",
        description="Measure TCP throughput on the local network against Gigabit Ethernet.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="role", metavar="{server,client}")

    server = subparsers.add_parser("server", parents=[common], help="receive and measure")
    server.add_argument("--host", default=None, help="address to bind (default: all interfaces)")

    client = subparsers.add_parser("client", parents=[common], help="send a payload to a server")
    client.add_argument("host", nargs="?", default=None, help="server address")
    client.add_argument(
        "--size-mb", type=int, default=None, help="payload size in MB (default: 100)"
    )
    client.add_argument(
        "--no-retry",
        dest="retry",
        action="store_false",
        default=None,
        help="fail on the first connection error",
    )
    client.add_argument(
        "--max-attempts", type=int, default=None, help="connection attempts (default: 50)"
    )

    return parser


def _event_loop_runner() -> Callable[[Coroutine[Any, Any, int]], int]:
    """Pick uvloop's runner when installed; Windows is not supported by uvloop."""
    if sys.platform != "win32":
        try:
            import uvloop
        except ImportError:
            # Install with: pip install localnet-speed[performance]
            pass
        else:
            runner: Callable[[Coroutine[Any, Any, int]], int] = uvloop.run
            return runner
    return asyncio.run


async def run(config: AppConfig, *, stdout: TextIO | None = None) -> int:
    """Run one session as described by ``config``.

    Args:
        config: Application configuration.
        stdout: Stream for text (or JSON) output, ``sys.stdout`` by default.

    Returns:
        Process exit code.
    """
    out = stdout if stdout is not None else sys.stdout
    # Keep stdout clean for JSON consumers.
    sinks: list[LogSink] = [ConsoleSink(sys.stderr if config.json_output else out)]
    file_sink: FileLogSink | None = None
    if config.log_file is not None:
        file_sink = FileLogSink(FileLogSinkConfig(file_path=config.log_file))
        sinks.append(file_sink)

    session_config = config.session
    observer = CliObserver(
        sinks,
        role=session_config.role,
        target_bytes=session_config.payload_bytes if session_config.role is Role.CLIENT else None,
        unit=config.unit,
        json_output=config.json_output,
        status=sys.stderr,
        stdout=out,
    )
    session = create_session(session_config, observer, retry_config=config.retry)

    loop = asyncio.get_running_loop()
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, session.cancel)

    exit_code = EXIT_OK
    try:
        if isinstance(session, ServerSession):
            await session.start()
            address = local_ipv4()
            if address == NOT_FOUND:
                address = "unknown local address"
            observer.log(
                f"Server started on {address}, port {session.bound_port}. "
                "Waiting for connections (Ctrl-C to stop)..."
            )
        else:
            observer.log(
                f"Client connecting to {session_config.host}:{session_config.port}, "
                f"sending {session_config.payload_size_mb} MB..."
            )
        await session.run()
    except Cancelled:
        exit_code = EXIT_OK
    except SpeedTestError as exc:
        logger.debug(f"Session failed: {exc!r}")
        exit_code = EXIT_FAILURE
    finally:
        with suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        if file_sink is not None:
            await file_sink.close()

    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``localnet-speed`` command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args)
    except ConfigError as exc:
        parser.print_usage(sys.stderr)
        print(f"localnet-speed: error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    return _event_loop_runner()(run(config))


if __name__ == "__main__":
    sys.exit(main())

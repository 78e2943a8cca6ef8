"""Pytest configuration and fixtures for localnet-speed tests."""

from __future__ import annotations

import asyncio
import socket

import pytest

from localnet_speed.engine import BaseObserver, Outcome
from localnet_speed.engine.models import RetryConfig


class RecordingObserver(BaseObserver):
    """Observer that records every event it receives."""

    def __init__(self) -> None:
        self.progress: list[int] = []
        self.connections: list[int] = []
        self.retries: list[tuple[int, int]] = []
        self.outcomes: list[Outcome] = []

    def on_progress(self, total_bytes: int) -> None:
        self.progress.append(total_bytes)

    def on_new_connection(self, count: int) -> None:
        self.connections.append(count)

    def on_retry(self, attempt: int, max_attempts: int) -> None:
        self.retries.append((attempt, max_attempts))

    def on_complete(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)


@pytest.fixture()
def free_port() -> int:
    """Provide a TCP port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


@pytest.fixture()
def fast_retry_config() -> RetryConfig:
    """Retry policy with zero delays for tests."""
    return RetryConfig(
        max_attempts=3,
        base_delay=0.0,
        delay_increment=0.0,
        max_delay=0.0,
        attempt_timeout=5.0,
    )


@pytest.fixture()
def observer() -> RecordingObserver:
    """Provide a fresh RecordingObserver."""
    return RecordingObserver()


@pytest.fixture()
def make_observer() -> type[RecordingObserver]:
    """Provide the RecordingObserver class for tests needing several observers."""
    return RecordingObserver


async def wait_for_outcomes(observer: RecordingObserver, count: int, timeout: float = 10.0) -> None:
    """Poll until ``observer`` has recorded ``count`` outcomes."""
    async with asyncio.timeout(timeout):
        while len(observer.outcomes) < count:
            await asyncio.sleep(0.01)


@pytest.fixture()
def outcomes_waiter():
    """Provide wait_for_outcomes to tests."""
    return wait_for_outcomes

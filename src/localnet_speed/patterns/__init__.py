"""Concurrency patterns module."""

from localnet_speed.patterns.counter import AtomicCounter
from localnet_speed.patterns.retry import RetryController, is_connect_error

__all__ = [
    # Counter
    "AtomicCounter",
    # Retry
    "RetryController",
    "is_connect_error",
]

"""LocalNet Speed.

Measures raw TCP throughput between two hosts on a local network and rates
the result against the Gigabit Ethernet ceiling of 125 MB/s.
"""

from localnet_speed.engine import (
    ClientSession,
    RetryConfig,
    Role,
    ServerSession,
    SessionConfig,
    SessionState,
    ThreadedSession,
    TransferResult,
    create_session,
)
from localnet_speed.errors import (
    BindError,
    Cancelled,
    ConfigError,
    ConnectionFailed,
    ConnectionTimeout,
    FailureKind,
    SpeedTestError,
    TransferIOError,
)
from localnet_speed.evaluation import Evaluation, Rating, SpeedUnit, evaluate

__version__ = "0.1.0"

__all__ = [
    "BindError",
    "Cancelled",
    "ClientSession",
    "ConfigError",
    "ConnectionFailed",
    "ConnectionTimeout",
    "Evaluation",
    "FailureKind",
    "Rating",
    "RetryConfig",
    "Role",
    "ServerSession",
    "SessionConfig",
    "SessionState",
    "SpeedTestError",
    "SpeedUnit",
    "ThreadedSession",
    "TransferIOError",
    "TransferResult",
    "create_session",
    "evaluate",
]

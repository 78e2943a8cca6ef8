"""Log sink module."""

from localnet_speed.sinks.base import LogSink
from localnet_speed.sinks.console import ConsoleSink
from localnet_speed.sinks.file import FileLogSink, FileLogSinkConfig

__all__ = [
    "ConsoleSink",
    "FileLogSink",
    "FileLogSinkConfig",
    "LogSink",
]

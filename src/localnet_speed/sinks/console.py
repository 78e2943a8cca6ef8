"""Log sink printing lines to a text stream."""

import sys
from typing import TextIO

from localnet_speed.sinks.base import LogSink


class ConsoleSink(LogSink):
    """Writes every line immediately to ``stream`` (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def append(self, line: str) -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        print(line, file=stream, flush=True)

    async def flush(self) -> None:
        pass

    async def close(self) -> None:
        pass

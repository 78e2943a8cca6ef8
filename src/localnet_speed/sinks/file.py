"""Append-only log file sink with buffered async writes."""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

import aiofiles

from localnet_speed.sinks.base import LogSink


@dataclass
class FileLogSinkConfig:
    """Configuration for FileLogSink.

    Attributes:
        file_path: Path to the log file. Existing content is kept.
        buffer_size: Number of lines to buffer before auto-flush.
    """

    file_path: Path
    buffer_size: int = 20


class FileLogSink(LogSink):
    """Append-only text log file with buffered async writes.

    ``append()`` is synchronous so it can be called from session observer
    callbacks; lines are buffered in memory and written with ``aiofiles``
    when the buffer reaches ``buffer_size`` lines or on ``flush()``.

    Example:
        ```python
        async with FileLogSink(FileLogSinkConfig(Path("speedtest.log"))) as sink:
            sink.append("Server listening on port 65432")
        ```
    """

    def __init__(self, config: FileLogSinkConfig) -> None:
        """Initialize the file sink.

        Args:
            config: Sink configuration.
        """
        self._config = config
        self._buffer: list[str] = []
        self._file: Any = None
        self._closed = False
        self._file_descriptor: int | None = None
        self._write_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def __aenter__(self) -> Self:
        """Enter async context manager and open the file.

        Returns:
            Self for context manager protocol.
        """
        await self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager and close the file."""
        await self.close()

    async def _open(self) -> None:
        """Open the log file for appending."""
        self._file = await aiofiles.open(
            self._config.file_path,
            mode="a",
            encoding="utf-8",
            newline="\n",
        )
        # Get the file descriptor for fsync
        self._file_descriptor = self._file.fileno()

    def append(self, line: str) -> None:
        """Buffer a line, scheduling a flush when the buffer is full.

        Args:
            line: Text to append; embedded newlines are kept as-is.

        Raises:
            RuntimeError: If the sink is closed.
        """
        if self._closed:
            raise RuntimeError("Cannot append to closed sink")

        self._buffer.append(line)

        if len(self._buffer) >= self._config.buffer_size:
            task = asyncio.get_running_loop().create_task(self.flush())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Write all buffered lines to disk.

        Forces write to disk using fsync.
        """
        async with self._write_lock:
            if not self._buffer:
                return
            if self._file is None:
                await self._open()

            lines, self._buffer = self._buffer, []
            await self._file.write("".join(line + "\n" for line in lines))
            await self._file.flush()
            if self._file_descriptor is not None:
                os.fsync(self._file_descriptor)

    async def close(self) -> None:
        """Flush remaining lines and close the file handle."""
        if self._closed:
            return

        if self._pending:
            await asyncio.gather(*self._pending)
        await self.flush()

        self._closed = True

        if self._file:
            await self._file.close()
            self._file = None
            self._file_descriptor = None

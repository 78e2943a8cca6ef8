"""Base protocol for log sinks."""

from typing import Protocol


class LogSink(Protocol):
    """Protocol for append-only text log destinations."""

    def append(self, line: str) -> None:
        """Append a single line. Must not block the event loop."""
        ...

    async def flush(self) -> None:
        """Ensure all appended lines are persisted."""
        ...

    async def close(self) -> None:
        """Flush and release resources."""
        ...

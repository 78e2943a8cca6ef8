"""Lock-guarded integer shared between transfer loops and progress consumers."""

import threading


class AtomicCounter:
    """
    Thread-safe integer cell.

    Transfer loops run on the event loop while progress consumers may read
    the running total from another thread (see ``ThreadedSession``), so every
    access goes through a ``threading.Lock``.

    Args:
        initial: Starting value. Defaults to 0.

    Example:
        ```python
        sent = AtomicCounter()
        total = sent.add_and_get(len(chunk))
        ```
    """

    def __init__(self, initial: int = 0) -> None:
        self._value = int(initial)
        self._lock = threading.Lock()

    def get(self) -> int:
        """Return the current value."""
        with self._lock:
            return self._value

    def set(self, value: int) -> None:
        """Replace the current value."""
        with self._lock:
            self._value = int(value)

    def add_and_get(self, delta: int) -> int:
        """Add ``delta`` and return the updated value.

        Args:
            delta: Amount to add. Transfer loops only ever pass positive chunk sizes.

        Returns:
            int: The value after the addition.
        """
        with self._lock:
            self._value += delta
            return self._value

    def __repr__(self) -> str:
        return f"AtomicCounter({self.get()})"

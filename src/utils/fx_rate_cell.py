"""Last-known USD/KRW rate shared between collection cycles."""

import math
import threading


class FxRateCell:
    """
    Lock-guarded single-slot holder for the most recent USD/KRW rate.

    Writes are last-write-wins. The value is advisory: readers must cope
    with it being empty or slightly stale.
    """

    def __init__(self, initial: float | None = None):
        self._lock = threading.Lock()
        self._value: float | None = None
        if initial is not None:
            self.set(initial)

    def get(self) -> float | None:
        with self._lock:
            return self._value

    def set(self, value: float) -> bool:
        """Store a rate; non-finite or non-positive values are ignored."""
        if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
            return False
        with self._lock:
            self._value = float(value)
        return True

    def seed(self, value: float) -> bool:
        """Store a rate only if the cell is still empty."""
        if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
            return False
        with self._lock:
            if self._value is not None:
                return False
            self._value = float(value)
        return True

    def clear(self) -> None:
        with self._lock:
            self._value = None

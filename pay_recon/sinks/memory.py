"""In-process sink that keeps events in a list."""

import threading
from typing import Any


class MemorySink:
    """Collect events in memory, for tests and simulations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[Any] = []

    def write(self, event: Any) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> list[Any]:
        """Return collected events with the given ``event_type``."""
        with self._lock:
            return [e for e in self.events if getattr(e, "event_type", None) == event_type]

    def counts(self) -> dict[str, int]:
        """Count collected events per type."""
        result: dict[str, int] = {}
        with self._lock:
            for event in self.events:
                event_type = getattr(event, "event_type", "record")
                result[event_type] = result.get(event_type, 0) + 1
        return result

    def clear(self) -> None:
        with self._lock:
            self.events.clear()

    def close(self) -> None:
        """Nothing to release."""

"""Console sink for watching reconciliation events during development."""

import threading
from collections import Counter
from collections.abc import Iterable
from typing import Any

from pay_recon.sinks.serialization import dumps


class ConsoleSink:
    """Print reconciliation events to stdout.

    Parameters
    ----------
    pretty : bool
        Indent each event instead of printing one JSON line.
    event_types : Iterable[str] | None
        Only print these event types; everything is printed when ``None``.
    """

    def __init__(self, pretty: bool = True, event_types: Iterable[str] | None = None) -> None:
        self.pretty = pretty
        self.event_types = frozenset(event_types) if event_types else None
        self.skipped = 0
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()

    def accepts(self, event: Any) -> bool:
        return self.event_types is None or getattr(event, "event_type", None) in self.event_types

    def write(self, event: Any) -> None:
        """Print a single event."""
        if not self.accepts(event):
            with self._lock:
                self.skipped += 1
            return
        text = dumps(event, pretty=self.pretty)
        # Delivery threads share stdout
        with self._lock:
            print(text)
            self._counts[getattr(event, "event_type", "record")] += 1

    def close(self) -> None:
        """Print how many events of each type went by."""
        print(f"\n{'=' * 60}")
        print("Console Sink Summary")
        print("=" * 60)
        for name, count in self._counts.most_common():
            print(f"  {name}: {count} events")
        if self.skipped:
            print(f"  ({self.skipped} events filtered out)")

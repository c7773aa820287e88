"""JSON file sink: an append-only event log plus point-in-time record snapshots."""

import json
import threading
from collections import Counter
from pathlib import Path
from typing import Any

from pay_recon.sinks.serialization import dumps, to_dict


class JsonFileSink:
    """Append events to a JSON Lines log and export record snapshots."""

    def __init__(
        self,
        output_dir: str | Path,
        pretty: bool = False,
        events_file: str = "reconciliation_events.jsonl",
    ) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write into; created if missing.
        pretty : bool
            Indent snapshot files. The event log is always one line per event.
        events_file : str
            File name of the event log inside ``output_dir``.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.pretty = pretty
        self.events_path = self.output_dir / events_file
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()
        self._snapshots: dict[Path, int] = {}

    def write(self, event: Any) -> None:
        """Append one event as a JSON line."""
        line = dumps(event)
        with self._lock:
            with open(self.events_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
            self._counts[getattr(event, "event_type", "record")] += 1

    def write_snapshot(self, name: str, records: list[Any]) -> Path:
        """Write ``records`` as one JSON array to ``<name>.json``, replacing it."""
        path = self.output_dir / (name.replace(".", "_") + ".json")
        data = [to_dict(record) for record in records]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2 if self.pretty else None, ensure_ascii=False, default=str)
        self._snapshots[path] = len(records)
        return path

    def close(self) -> None:
        """Print what was written."""
        print(f"Events appended to: {self.events_path}")
        for name, count in self._counts.most_common():
            print(f"  {name}: {count} events")
        for path, count in self._snapshots.items():
            print(f"Snapshot {path.name}: {count} records")

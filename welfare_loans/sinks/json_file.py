"""JSON file sink for ledger events and exports."""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from welfare_loans.models import Event
from welfare_loans.sinks.serialization import to_dict

logger = logging.getLogger(__name__)


class JsonFileSink:
    """Write events to JSON Lines files and exports to JSON files.

    Each event type gets its own file: ``loan.payment_allocated`` events are
    appended to ``loan_payment_allocated.jsonl`` in ``output_dir``.
    """

    def __init__(self, output_dir: str | Path, pretty: bool = False) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write JSON files.
        pretty : bool
            Pretty-print batch exports. Event lines are always compact.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.pretty = pretty
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def event_path(self, event_type: str) -> Path:
        # Use event type as filename (replace dots with underscores)
        return self.output_dir / (event_type.replace(".", "_") + ".jsonl")

    def publish(self, event: Event) -> None:
        """Append an event to its type's JSON Lines file."""
        line = json.dumps(to_dict(event), ensure_ascii=False)
        with self._lock:
            with open(self.event_path(event.event_type), "a", encoding="utf-8") as f:
                f.write(line + "\n")
            self._counts[event.event_type] = self._counts.get(event.event_type, 0) + 1

    def write_batch(self, entity_type: str, records: list[Any]) -> Path:
        """Write a batch of records to ``{entity_type}.json``, replacing it."""
        file_path = self.output_dir / f"{entity_type}.json"

        data = [to_dict(record) for record in records]

        with self._lock:
            with open(file_path, "w", encoding="utf-8") as f:
                if self.pretty:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                else:
                    json.dump(data, f, ensure_ascii=False)
            self._counts[entity_type] = len(records)

        return file_path

    @property
    def counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def close(self) -> None:
        """Log what was written."""
        logger.info("JSON files written to: %s", self.output_dir)
        for name, count in self.counts.items():
            logger.info("  %s: %d records", name, count)

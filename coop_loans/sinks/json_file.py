"""JSON Lines file sink."""

import logging
import threading
from pathlib import Path
from typing import Any

from coop_loans.exceptions import SinkError
from coop_loans.sinks.serialization import to_json

logger = logging.getLogger(__name__)


class JsonFileSink:
    """Append records to ``<entity_type>.jsonl`` files, one JSON document per line."""

    def __init__(self, output_dir: str | Path) -> None:
        """Initialize JSON Lines sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write files into (created if missing).
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def path_for(self, entity_type: str) -> Path:
        return self.output_dir / f"{entity_type}.jsonl"

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Append a batch of records."""
        lines = [to_json(record) + "\n" for record in records]
        with self._lock:
            try:
                with open(self.path_for(entity_type), "a", encoding="utf-8") as f:
                    f.writelines(lines)
            except OSError as e:
                raise SinkError(f"Cannot write {entity_type}: {e}") from e
            self._counts[entity_type] = self._counts.get(entity_type, 0) + len(records)

    def close(self) -> None:
        """Log what was written."""
        for entity_type, count in self._counts.items():
            logger.info("Wrote %d %s records to %s", count, entity_type, self.path_for(entity_type))

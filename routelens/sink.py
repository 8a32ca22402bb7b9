"""Record sinks: the persistence boundary for finished MonitorRecords."""

import csv
import logging
import os
import threading
from datetime import datetime, timedelta
from typing import Protocol

from routelens.errors import SinkError
from routelens.models import MonitorRecord

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "created_at",
    "target",
    "latency_ms",
    "packet_loss",
    "speed_up_mbps",
    "speed_down_mbps",
    "trace_json",
]


class RecordSink(Protocol):
    """Accepts finished records. Called concurrently from worker threads."""

    def save(self, record: MonitorRecord) -> None:
        """Persist record or raise SinkError."""
        ...


class MemoryRecordSink:
    """Thread-safe in-memory sink with history queries and retention pruning."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records = []

    def save(self, record: MonitorRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self, target: str | None = None) -> list[MonitorRecord]:
        """Records in arrival order, optionally for a single target."""
        with self._lock:
            if target is None:
                return list(self._records)
            return [r for r in self._records if r.target == target]

    def history(self, target: str, start: datetime, end: datetime) -> list[MonitorRecord]:
        """Records for target created within [start, end], oldest first."""
        with self._lock:
            selected = [
                r for r in self._records if r.target == target and start <= r.created_at <= end
            ]
        return sorted(selected, key=lambda r: r.created_at)

    def prune_older_than(self, retention_days: int, now: datetime | None = None) -> int:
        """Delete records created before now - retention_days. Returns the count removed."""
        cutoff = (now or datetime.now()) - timedelta(days=retention_days)
        with self._lock:
            kept = [r for r in self._records if r.created_at >= cutoff]
            removed = len(self._records) - len(kept)
            self._records = kept

        if removed > 0:
            logger.info(
                "Pruned %d old records (older than %s)", removed, cutoff.strftime("%Y-%m-%d")
            )
        return removed

    def __len__(self):
        with self._lock:
            return len(self._records)


class CsvRecordSink:
    """Appends records to a CSV file, writing the header once."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def save(self, record: MonitorRecord) -> None:
        row = {
            "created_at": record.created_at.isoformat(),
            "target": record.target,
            "latency_ms": f"{record.latency_ms:.3f}",
            "packet_loss": f"{record.packet_loss:.1f}",
            "speed_up_mbps": f"{record.speed_up_mbps:.3f}",
            "speed_down_mbps": f"{record.speed_down_mbps:.3f}",
            "trace_json": record.trace_json,
        }
        with self._lock:
            try:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                write_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
                # Write CSV with proper encoding and newline handling
                with open(self.path, "a", newline="", encoding="utf-8") as csvfile:
                    writer = csv.DictWriter(csvfile, fieldnames=CSV_FIELDS)
                    if write_header:
                        writer.writeheader()
                    writer.writerow(row)
            except OSError as e:
                raise SinkError(f"cannot write record to {self.path}: {e}") from e

"""Tests for the record sinks."""

import csv
import threading
from datetime import datetime, timedelta

import pytest

from routelens.errors import SinkError
from routelens.models import MonitorRecord
from routelens.sink import CSV_FIELDS, CsvRecordSink, MemoryRecordSink


def record(target="example.com", created_at=None, latency=10.0):
    return MonitorRecord(
        target=target,
        created_at=created_at or datetime.now(),
        latency_ms=latency,
        packet_loss=0.0,
    )


class TestMemoryRecordSink:
    """Test the in-memory sink."""

    def test_save_and_list(self):
        """Test saved records are listed in arrival order."""
        sink = MemoryRecordSink()
        first, second = record("a"), record("b")

        sink.save(first)
        sink.save(second)

        assert sink.records() == [first, second]
        assert sink.records("b") == [second]
        assert len(sink) == 2

    def test_history_window_and_order(self):
        """Test history filters by target and time range, oldest first."""
        sink = MemoryRecordSink()
        base = datetime(2024, 1, 1, 12, 0)
        late = record("a", base + timedelta(minutes=2))
        early = record("a", base)
        outside = record("a", base + timedelta(hours=2))
        sink.save(late)
        sink.save(early)
        sink.save(outside)
        sink.save(record("b", base))

        history = sink.history("a", base, base + timedelta(minutes=5))

        assert history == [early, late]

    def test_prune_older_than(self):
        """Test retention pruning removes records by creation time."""
        sink = MemoryRecordSink()
        now = datetime(2024, 3, 10)
        old = record("a", now - timedelta(days=10))
        fresh = record("a", now - timedelta(days=1))
        sink.save(old)
        sink.save(fresh)

        removed = sink.prune_older_than(7, now=now)

        assert removed == 1
        assert sink.records() == [fresh]

    def test_concurrent_saves(self):
        """Test concurrent writers never lose records."""
        sink = MemoryRecordSink()

        def writer(target):
            for _ in range(200):
                sink.save(record(target))

        threads = [threading.Thread(target=writer, args=(f"host{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(sink) == 8 * 200


class TestCsvRecordSink:
    """Test the CSV file sink."""

    def test_header_written_once(self, tmp_path):
        """Test the header appears once across several saves."""
        path = tmp_path / "records.csv"
        sink = CsvRecordSink(str(path))

        sink.save(record("a", latency=1.5))
        sink.save(record("b", latency=2.5))

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))

        assert rows[0] == CSV_FIELDS
        assert len(rows) == 3
        assert rows[1][1] == "a"
        assert rows[2][2] == "2.500"

    def test_creates_parent_directory(self, tmp_path):
        """Test missing parent directories are created."""
        path = tmp_path / "data" / "nested" / "records.csv"
        CsvRecordSink(str(path)).save(record())
        assert path.exists()

    def test_trace_payload_round_trips(self, tmp_path):
        """Test JSON trace payloads with commas and quotes survive CSV quoting."""
        path = tmp_path / "records.csv"
        payload = '[{"hop": 1, "host": "10.0.0.1"}]'
        rec = MonitorRecord(target="a", created_at=datetime.now(), trace_json=payload)

        CsvRecordSink(str(path)).save(rec)

        with open(path, newline="", encoding="utf-8") as f:
            row = next(csv.DictReader(f))
        assert row["trace_json"] == payload

    def test_write_failure_raises_sink_error(self, tmp_path):
        """Test I/O errors surface as SinkError."""
        sink = CsvRecordSink(str(tmp_path))  # a directory, not a file

        with pytest.raises(SinkError):
            sink.save(record())

"""Tests for routelens.models invariants."""

import json
from dataclasses import FrozenInstanceError
from datetime import datetime

import pytest

from routelens.models import (
    MonitorRecord,
    PingResult,
    SpeedResult,
    TraceHop,
    TraceResult,
    loss_rate,
)


class TestLossRate:
    """Test loss percentage computation."""

    @pytest.mark.parametrize(
        "sent,received,expected",
        [(0, 0, 0.0), (5, 5, 0.0), (5, 0, 100.0), (4, 3, 25.0), (3, 1, 200 / 3)],
    )
    def test_loss_rate_formula(self, sent, received, expected):
        """loss = (sent - received) / sent * 100, zero when nothing was sent."""
        assert loss_rate(sent, received) == pytest.approx(expected)


class TestPingResult:
    """Test PingResult construction invariants."""

    def test_valid_result(self):
        """Test a normal result keeps its values."""
        result = PingResult(
            packets_sent=5,
            packets_received=4,
            min_rtt_ms=1.0,
            max_rtt_ms=3.0,
            avg_rtt_ms=2.0,
            loss_rate=20.0,
        )

        assert result.packets_received == 4
        assert result.loss_rate == 20.0
        assert isinstance(result.timestamp, datetime)

    def test_received_cannot_exceed_sent(self):
        """Test packets_received > packets_sent is rejected."""
        with pytest.raises(ValueError, match="exceeds"):
            PingResult(packets_sent=2, packets_received=3)

    def test_loss_rate_range_enforced(self):
        """Test loss rate outside 0..100 is rejected."""
        with pytest.raises(ValueError, match="loss_rate"):
            PingResult(packets_sent=1, packets_received=1, loss_rate=150.0)

    def test_result_is_immutable(self):
        """Test results cannot be mutated after construction."""
        result = PingResult(packets_sent=1, packets_received=1)
        with pytest.raises(FrozenInstanceError):
            result.packets_received = 0


class TestTraceResult:
    """Test trace payload serialization."""

    def test_to_json_preserves_hop_order(self):
        """Test hops are serialized in the order given."""
        trace = TraceResult(
            target="example.com",
            hops=(
                TraceHop(hop=1, host="10.0.0.1", avg_ms=1.5),
                TraceHop(hop=2, host="192.0.2.1", avg_ms=8.0, asn="AS64500"),
            ),
        )

        payload = json.loads(trace.to_json())

        assert [hop["hop"] for hop in payload] == [1, 2]
        assert payload[0]["host"] == "10.0.0.1"
        assert payload[1]["asn"] == "AS64500"
        assert payload[0]["asn"] is None

    def test_to_json_without_hops(self):
        """Test a trace with no hops serializes to an empty array."""
        assert TraceResult(target="example.com").to_json() == "[]"


class TestMonitorRecord:
    """Test record merging."""

    def test_from_ping_only(self):
        """Test a ping-only record has no trace payload and zero speed."""
        ping = PingResult(packets_sent=4, packets_received=3, avg_rtt_ms=12.5, loss_rate=25.0)

        record = MonitorRecord.from_results("example.com", ping=ping)

        assert record.target == "example.com"
        assert record.latency_ms == 12.5
        assert record.packet_loss == 25.0
        assert record.trace_json == ""
        assert record.speed_up_mbps == 0.0
        assert record.speed_down_mbps == 0.0
        assert record.has_speed is False

    def test_from_ping_and_trace(self):
        """Test the trace payload is attached when a trace is given."""
        ping = PingResult(packets_sent=1, packets_received=1, avg_rtt_ms=5.0)
        trace = TraceResult(target="example.com", hops=(TraceHop(hop=1, host="10.0.0.1"),))

        record = MonitorRecord.from_results("example.com", ping=ping, trace=trace)

        assert json.loads(record.trace_json)[0]["host"] == "10.0.0.1"

    def test_from_speed_only(self):
        """Test a speed-only record carries only speed fields."""
        speed = SpeedResult(upload_mbps=40.0, download_mbps=95.5)

        record = MonitorRecord.from_results("example.com", speed=speed)

        assert record.latency_ms == 0.0
        assert record.packet_loss == 0.0
        assert record.trace_json == ""
        assert record.speed_up_mbps == 40.0
        assert record.speed_down_mbps == 95.5
        assert record.has_speed is True

    def test_explicit_creation_time(self):
        """Test created_at can be supplied."""
        ts = datetime(2024, 1, 2, 3, 4, 5)
        record = MonitorRecord.from_results("example.com", created_at=ts)
        assert record.created_at == ts

"""Data models for RouteLens measurements."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime


def loss_rate(sent: int, received: int) -> float:
    """Percentage of echo requests that got no reply (0.0 when nothing was sent)."""
    if sent <= 0:
        return 0.0
    return (sent - received) / sent * 100.0


@dataclass(frozen=True)
class PingResult:
    """Aggregate statistics of one ICMP echo run against a single target.

    RTT values are in milliseconds and only cover successful echoes. A run
    where every echo was lost is still a valid result with zeroed RTTs.
    """

    packets_sent: int
    packets_received: int
    min_rtt_ms: float = 0.0
    max_rtt_ms: float = 0.0
    avg_rtt_ms: float = 0.0
    loss_rate: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Reject results that break the sent/received/loss invariants."""
        if self.packets_sent < 0 or self.packets_received < 0:
            raise ValueError("packet counts must be non-negative")
        if self.packets_received > self.packets_sent:
            raise ValueError(
                f"packets_received ({self.packets_received}) exceeds "
                f"packets_sent ({self.packets_sent})"
            )
        if not 0.0 <= self.loss_rate <= 100.0:
            raise ValueError(f"loss_rate out of range: {self.loss_rate}")


@dataclass(frozen=True)
class TraceHop:
    """One hop of a hop-by-hop path report."""

    hop: int
    host: str
    loss: float = 0.0
    last_ms: float = 0.0
    avg_ms: float = 0.0
    best_ms: float = 0.0
    worst_ms: float = 0.0
    asn: str | None = None


@dataclass(frozen=True)
class TraceResult:
    """Ordered hops towards a target. Hop order is significant."""

    target: str
    hops: tuple[TraceHop, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    def to_json(self) -> str:
        """Serialize hops as a JSON array in hop order."""
        return json.dumps([asdict(hop) for hop in self.hops])


@dataclass(frozen=True)
class SpeedResult:
    """Result of one bandwidth test, throughput in Mbps."""

    upload_mbps: float
    download_mbps: float
    latency_ms: float | None = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class MonitorRecord:
    """The persisted unit: one target measured at one point in time.

    Zero upload/download speed means the bandwidth test did not run for
    this record, not that zero throughput was measured. An empty
    ``trace_json`` means no path report is attached.
    """

    target: str
    created_at: datetime
    latency_ms: float = 0.0
    packet_loss: float = 0.0
    trace_json: str = ""
    speed_up_mbps: float = 0.0
    speed_down_mbps: float = 0.0

    @classmethod
    def from_results(
        cls,
        target: str,
        ping: PingResult | None = None,
        trace: TraceResult | None = None,
        speed: SpeedResult | None = None,
        created_at: datetime | None = None,
    ) -> "MonitorRecord":
        """Merge whatever results one task produced into a single record."""
        return cls(
            target=target,
            created_at=created_at or datetime.now(),
            latency_ms=ping.avg_rtt_ms if ping is not None else 0.0,
            packet_loss=ping.loss_rate if ping is not None else 0.0,
            trace_json=trace.to_json() if trace is not None else "",
            speed_up_mbps=speed.upload_mbps if speed is not None else 0.0,
            speed_down_mbps=speed.download_mbps if speed is not None else 0.0,
        )

    @property
    def has_speed(self) -> bool:
        """True when this record carries a bandwidth measurement."""
        return self.speed_up_mbps != 0.0 or self.speed_down_mbps != 0.0

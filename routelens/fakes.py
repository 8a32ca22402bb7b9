"""Simulated probe capabilities for testing and offline runs."""

import random
import threading
from datetime import datetime

from routelens.diagnostics import SpeedConfig
from routelens.icmp import compute_ping_stats
from routelens.models import PingResult, SpeedResult, TraceHop, TraceResult
from routelens.validation import validate_target


class _SeededRandom:
    """Isolated, lock-protected random source shared by worker threads."""

    def __init__(self, seed: int | None = None):
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def random(self) -> float:
        with self._lock:
            return self._random.random()

    def gauss(self, mu: float, sigma: float) -> float:
        with self._lock:
            return self._random.gauss(mu, sigma)


class FakeProber:
    """Generates plausible ping statistics without touching the network."""

    def __init__(self, count: int = 5, seed: int | None = None):
        self.count = count
        self._random = _SeededRandom(seed)

        # Simulation parameters
        self.base_latency = 25.0  # Base latency in ms
        self.latency_variance = 5.0  # Normal variance
        self.spike_probability = 0.05  # 5% chance of latency spike
        self.spike_multiplier = 3.0  # Spike makes latency 3x higher
        self.loss_probability = 0.02  # 2% chance of packet loss

    def probe(self, target: str) -> PingResult:
        validate_target(target)

        rtts = []
        for _ in range(self.count):
            if self._random.random() < self.loss_probability:
                continue
            latency = self.base_latency + self._random.gauss(0, self.latency_variance)
            if self._random.random() < self.spike_probability:
                latency *= self.spike_multiplier
            # Ensure latency is positive
            rtts.append(max(0.1, latency))

        return compute_ping_stats(self.count, rtts)


class FakeTraceRunner:
    """Generates a fixed-length path with increasing latency per hop."""

    def __init__(self, hops: int = 6, seed: int | None = None):
        self.hops = hops
        self._random = _SeededRandom(seed)

    def trace(self, target: str) -> TraceResult:
        validate_target(target)

        hops = []
        latency = 1.0
        for idx in range(1, self.hops + 1):
            latency += abs(self._random.gauss(4.0, 2.0))
            host = target if idx == self.hops else f"10.0.{idx}.1"
            hops.append(
                TraceHop(
                    hop=idx,
                    host=host,
                    loss=0.0,
                    last_ms=round(latency, 2),
                    avg_ms=round(latency, 2),
                    best_ms=round(latency * 0.9, 2),
                    worst_ms=round(latency * 1.2, 2),
                    asn=f"AS{64500 + idx}",
                )
            )
        return TraceResult(target=target, hops=tuple(hops), timestamp=datetime.now())


class FakeSpeedTester:
    """Generates throughput figures around a configurable baseline."""

    def __init__(self, base_mbps: float = 100.0, seed: int | None = None):
        self.base_mbps = base_mbps
        self._random = _SeededRandom(seed)

    def measure(self, config: SpeedConfig) -> SpeedResult:
        validate_target(config.target)

        def sample() -> float:
            return round(max(0.1, self.base_mbps + self._random.gauss(0, self.base_mbps * 0.1)), 3)

        return SpeedResult(
            upload_mbps=sample(),
            download_mbps=sample(),
            timestamp=datetime.now(),
        )

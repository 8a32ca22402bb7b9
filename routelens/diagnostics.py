"""Capability interfaces for the ping, traceroute and bandwidth probes."""

from dataclasses import dataclass
from typing import Protocol

from routelens.models import PingResult, SpeedResult, TraceResult

DEFAULT_SSH_PORT = 22
DEFAULT_IPERF_PORT = 5201
DEFAULT_TEST_BYTES = 50 * 1024 * 1024


class Prober(Protocol):
    """Runs an ICMP echo series against one target."""

    def probe(self, target: str) -> PingResult:
        """Return ping statistics or raise ProbeTransportError."""
        ...


class TraceCapability(Protocol):
    """Produces a hop-by-hop path report for one target."""

    def trace(self, target: str) -> TraceResult:
        """Return the ordered hops or raise DiagnosticUnavailable."""
        ...


class SpeedCapability(Protocol):
    """Measures upload and download throughput against one target."""

    def measure(self, config: "SpeedConfig") -> SpeedResult:
        """Return throughput in Mbps or raise DiagnosticUnavailable."""
        ...


@dataclass(frozen=True)
class SpeedConfig:
    """Inputs for one bandwidth test.

    ``user`` and ``key_path`` are only used by transports that need a
    login (SSH); ``test_bytes`` is the payload moved in each direction.
    """

    target: str = ""
    port: int = DEFAULT_SSH_PORT
    user: str = ""
    key_path: str = ""
    test_bytes: int = DEFAULT_TEST_BYTES

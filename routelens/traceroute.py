"""Traceroute capability backed by the ``mtr`` command."""

import json
import logging
import shutil
import subprocess
from datetime import datetime

from routelens.errors import DiagnosticUnavailable
from routelens.models import TraceHop, TraceResult
from routelens.validation import validate_target

logger = logging.getLogger(__name__)


def _as_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_mtr_report(output: str, target: str) -> TraceResult:
    """Parse ``mtr --json`` output into a TraceResult (pure function).

    Hops are numbered by their position in ``report.hubs``. The reported
    destination falls back to the requested target when mtr omits it.

    Raises:
        DiagnosticUnavailable: if the output is not valid JSON or holds no hops.
    """
    try:
        data = json.loads(output)
    except (TypeError, ValueError) as e:
        raise DiagnosticUnavailable(f"parse mtr json failed: {e}") from e

    report = data.get("report") if isinstance(data, dict) else None
    if not isinstance(report, dict):
        raise DiagnosticUnavailable("mtr output has no report section")

    hubs = report.get("hubs") or []
    if not isinstance(hubs, list) or not hubs:
        raise DiagnosticUnavailable("mtr report contains no hops")

    hops = []
    for idx, hub in enumerate(hubs, start=1):
        if not isinstance(hub, dict):
            raise DiagnosticUnavailable(f"malformed hop entry at position {idx}")
        asn = hub.get("ASN")
        hops.append(
            TraceHop(
                hop=idx,
                host=str(hub.get("host", hub.get("Host", "???"))),
                loss=_as_float(hub.get("Loss%")),
                last_ms=_as_float(hub.get("Last")),
                avg_ms=_as_float(hub.get("Avg")),
                best_ms=_as_float(hub.get("Best")),
                worst_ms=_as_float(hub.get("Wrst")),
                asn=str(asn) if asn else None,
            )
        )

    mtr_section = report.get("mtr") or {}
    dst = mtr_section.get("dst") if isinstance(mtr_section, dict) else None
    return TraceResult(target=dst or target, hops=tuple(hops), timestamp=datetime.now())


class MtrTraceRunner:
    """Runs ``mtr --json`` as a subprocess and parses its report.

    The target is validated before the command is built, and the command is
    passed as an argument list (never through a shell).
    """

    def __init__(self, cycles: int = 10, timeout: float = 60.0, binary: str = "mtr"):
        if cycles <= 0:
            raise ValueError("cycles must be positive")
        self.cycles = cycles
        self.timeout = timeout
        self.binary = binary

    def build_command(self, target: str) -> list[str]:
        """Build the mtr argument list for target."""
        return [self.binary, "--json", "--aslookup", "-c", str(self.cycles), target]

    def trace(self, target: str) -> TraceResult:
        """Trace the path to target.

        Raises:
            InvalidTarget: if target fails validation
            DiagnosticUnavailable: if mtr is missing, fails, times out or
                produces unparsable output
        """
        validate_target(target)

        if shutil.which(self.binary) is None:
            raise DiagnosticUnavailable(f"{self.binary} not found in PATH")

        cmd = self.build_command(target)
        logger.debug("Executing traceroute: target=%s, cycles=%d", target, self.cycles)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                shell=False,
            )
        except subprocess.TimeoutExpired as e:
            raise DiagnosticUnavailable(
                f"mtr timed out after {self.timeout}s for {target}"
            ) from e
        except OSError as e:
            raise DiagnosticUnavailable(f"mtr execution failed: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise DiagnosticUnavailable(
                f"mtr exited with {result.returncode}: {stderr[:200] or '(no output)'}"
            )

        trace = parse_mtr_report(result.stdout, target)
        logger.debug("Traceroute finished: target=%s, hops=%d", target, len(trace.hops))
        return trace

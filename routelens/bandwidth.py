"""Bandwidth capabilities: SSH bulk transfer and iperf3."""

import json
import logging
import re
import shutil
import subprocess
import time
from datetime import datetime

from routelens.diagnostics import DEFAULT_IPERF_PORT, SpeedConfig
from routelens.errors import DiagnosticUnavailable
from routelens.models import SpeedResult
from routelens.validation import validate_target

logger = logging.getLogger(__name__)

_SSH_USER = re.compile(r"^[A-Za-z_][A-Za-z0-9._-]{0,31}$")


def throughput_mbps(num_bytes: int, seconds: float) -> float:
    """Convert a transfer of num_bytes over seconds into megabits per second."""
    if seconds <= 0:
        return 0.0
    return num_bytes * 8 / seconds / 1_000_000


def _validate_port(port: int) -> None:
    if not 1 <= port <= 65535:
        raise DiagnosticUnavailable(f"invalid port {port}: must be between 1 and 65535")


def parse_iperf_report(output: str) -> SpeedResult:
    """Parse ``iperf3 -J`` output into a SpeedResult (pure function).

    Received bits become the download rate and sent bits the upload rate.

    Raises:
        DiagnosticUnavailable: if the report is not JSON or lacks the summary.
    """
    try:
        data = json.loads(output)
    except (TypeError, ValueError) as e:
        raise DiagnosticUnavailable(f"failed to parse iperf3 output: {e}") from e

    if not isinstance(data, dict):
        raise DiagnosticUnavailable("iperf3 output is not a JSON object")
    if data.get("error"):
        raise DiagnosticUnavailable(f"iperf3 reported an error: {data['error']}")

    end = data.get("end") or {}
    try:
        received = float(end["sum_received"]["bits_per_second"])
        sent = float(end["sum_sent"]["bits_per_second"])
    except (KeyError, TypeError, ValueError) as e:
        raise DiagnosticUnavailable(f"iperf3 report missing summary: {e}") from e

    return SpeedResult(
        upload_mbps=round(sent / 1_000_000, 3),
        download_mbps=round(received / 1_000_000, 3),
        timestamp=datetime.now(),
    )


class IperfSpeedTester:
    """Runs ``iperf3`` in client mode against a target running an iperf3 server."""

    def __init__(self, duration: int = 5, timeout: float = 30.0, binary: str = "iperf3"):
        self.duration = duration
        self.timeout = timeout
        self.binary = binary

    def build_command(self, config: SpeedConfig) -> list[str]:
        """Build the iperf3 argument list. Port 0 selects the iperf3 default."""
        port = config.port or DEFAULT_IPERF_PORT
        return [self.binary, "-c", config.target, "-p", str(port), "-J", "-t", str(self.duration)]

    def measure(self, config: SpeedConfig) -> SpeedResult:
        """Run one iperf3 test.

        Raises:
            InvalidTarget: if the target fails validation
            DiagnosticUnavailable: on bad port, missing binary, failure or
                unparsable output
        """
        validate_target(config.target)
        _validate_port(config.port or DEFAULT_IPERF_PORT)

        if shutil.which(self.binary) is None:
            raise DiagnosticUnavailable(f"{self.binary} not found in PATH")

        try:
            result = subprocess.run(
                self.build_command(config),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                shell=False,
            )
        except subprocess.TimeoutExpired as e:
            raise DiagnosticUnavailable(f"iperf3 timed out after {self.timeout}s") from e
        except OSError as e:
            raise DiagnosticUnavailable(f"iperf3 execution failed: {e}") from e

        # iperf3 -J reports failures inside the JSON document as well
        if result.returncode != 0 and not result.stdout:
            raise DiagnosticUnavailable(
                f"iperf3 exited with {result.returncode}: {(result.stderr or '').strip()[:200]}"
            )
        speed = parse_iperf_report(result.stdout)
        logger.info(
            "iperf3 finished: target=%s, up=%.2fMbps, down=%.2fMbps",
            config.target,
            speed.upload_mbps,
            speed.download_mbps,
        )
        return speed


class SshSpeedTester:
    """Measures throughput by streaming bytes through an SSH session.

    Upload pipes ``test_bytes`` zero bytes into ``cat > /dev/null`` on the
    remote host; download reads the same amount from ``head -c``. Each
    direction is timed end to end, so SSH handshake time is included.
    """

    def __init__(self, timeout: float = 300.0, binary: str = "ssh", clock=time.perf_counter):
        self.timeout = timeout
        self.binary = binary
        self._clock = clock

    def build_command(self, config: SpeedConfig, remote_command: str) -> list[str]:
        """Build the ssh argument list for one remote command."""
        cmd = [
            self.binary,
            "-p",
            str(config.port),
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=accept-new",
        ]
        if config.key_path:
            cmd += ["-i", config.key_path]
        destination = f"{config.user}@{config.target}" if config.user else config.target
        cmd += [destination, remote_command]
        return cmd

    def measure(self, config: SpeedConfig) -> SpeedResult:
        """Run an upload then a download transfer against config.target.

        Raises:
            InvalidTarget: if the target fails validation
            DiagnosticUnavailable: on bad user/port/size, missing ssh binary,
                transfer failure or short read
        """
        validate_target(config.target)
        _validate_port(config.port)
        if config.user and not _SSH_USER.match(config.user):
            raise DiagnosticUnavailable(f"invalid ssh user name: {config.user!r}")
        if config.test_bytes <= 0:
            raise DiagnosticUnavailable("test_bytes must be positive")

        if shutil.which(self.binary) is None:
            raise DiagnosticUnavailable(f"{self.binary} not found in PATH")

        payload = bytes(config.test_bytes)
        upload_secs = self._timed_run(
            self.build_command(config, "cat > /dev/null"), stdin_data=payload
        )[0]

        download_secs, received = self._timed_run(
            self.build_command(config, f"head -c {int(config.test_bytes)} /dev/zero")
        )
        if received != config.test_bytes:
            raise DiagnosticUnavailable(
                f"short download: expected {config.test_bytes} bytes, got {received}"
            )

        speed = SpeedResult(
            upload_mbps=round(throughput_mbps(config.test_bytes, upload_secs), 3),
            download_mbps=round(throughput_mbps(received, download_secs), 3),
            timestamp=datetime.now(),
        )
        logger.info(
            "SSH speed test finished: target=%s, up=%.2fMbps, down=%.2fMbps",
            config.target,
            speed.upload_mbps,
            speed.download_mbps,
        )
        return speed

    def _timed_run(self, cmd: list[str], stdin_data: bytes | None = None):
        """Run cmd and return (elapsed seconds, bytes received on stdout)."""
        start = self._clock()
        try:
            result = subprocess.run(
                cmd,
                input=stdin_data,
                capture_output=True,
                timeout=self.timeout,
                shell=False,
            )
        except subprocess.TimeoutExpired as e:
            raise DiagnosticUnavailable(f"ssh transfer timed out after {self.timeout}s") from e
        except OSError as e:
            raise DiagnosticUnavailable(f"ssh execution failed: {e}") from e
        elapsed = self._clock() - start

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", "replace").strip()
            raise DiagnosticUnavailable(
                f"ssh exited with {result.returncode}: {stderr[:200] or '(no output)'}"
            )
        return elapsed, len(result.stdout or b"")

"""Entry point for the RouteLens monitor."""

import logging
import os
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from routelens.config import MonitorConfig, load_config
from routelens.diagnostics import SpeedConfig
from routelens.errors import InvalidTarget
from routelens.fakes import FakeProber, FakeSpeedTester, FakeTraceRunner
from routelens.logging_config import LogRingBuffer, configure_logging
from routelens.orchestrator import ProbeOrchestrator
from routelens.scheduler import MonitorScheduler
from routelens.sink import CsvRecordSink

logger = logging.getLogger(__name__)


def build_capabilities(config: MonitorConfig, force_fake: bool = False):
    """Select real or simulated capabilities.

    Returns:
        Tuple of (prober, tracer, speed_tester, speed_config)
    """
    if force_fake:
        logger.info("Using simulated probes (ROUTELENS_PROBER=fake)")
        return (
            FakeProber(count=config.ping_count),
            FakeTraceRunner(),
            FakeSpeedTester(),
            SpeedConfig(test_bytes=config.test_bytes),
        )

    from routelens.bandwidth import IperfSpeedTester, SshSpeedTester
    from routelens.icmp import IcmpProber
    from routelens.traceroute import MtrTraceRunner

    prober = IcmpProber(
        count=config.ping_count,
        interval=config.ping_interval_s,
        timeout=config.ping_timeout_s,
    )
    if not prober.privileged:
        logger.info("Not running as root: using unprivileged ICMP datagram sockets")

    tracer = MtrTraceRunner(cycles=config.trace_cycles)

    if config.speed_method == "iperf":
        speed_tester = IperfSpeedTester()
        speed_config = SpeedConfig(port=config.iperf_port, test_bytes=config.test_bytes)
    else:
        speed_tester = SshSpeedTester()
        speed_config = SpeedConfig(
            port=config.ssh_port,
            user=config.ssh_user,
            key_path=config.ssh_key_path,
            test_bytes=config.test_bytes,
        )
    return prober, tracer, speed_tester, speed_config


def log_problem_summary(ring: LogRingBuffer, limit: int = 5) -> int:
    """Summarize warnings and errors captured during the run.

    Returns:
        Number of WARNING-or-worse entries in the ring buffer
    """
    problems = ring.by_level("WARNING", "ERROR", "CRITICAL")
    if not problems:
        logger.info("No warnings or errors during this run")
        return 0

    logger.info("%d warnings/errors during this run; most recent:", len(problems))
    for entry in problems[-limit:]:
        logger.info(
            "  %s %s [%s] %s",
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.level,
            entry.source,
            entry.message,
        )
    return len(problems)


def main():
    """Main entry point for the RouteLens monitor."""
    ring = configure_logging()
    app = QCoreApplication(sys.argv)

    try:
        config = load_config()
    except ValueError as e:
        logger.error("Configuration invalid: %s", e)
        return 2

    if not config.targets:
        logger.warning("No targets configured (set ROUTELENS_TARGETS)")

    force_fake = os.environ.get("ROUTELENS_PROBER", "").lower() == "fake"
    prober, tracer, speed_tester, speed_config = build_capabilities(config, force_fake)

    try:
        orchestrator = ProbeOrchestrator(
            config.targets,
            prober=prober,
            sink=CsvRecordSink(config.records_path),
            tracer=tracer,
            speed_tester=speed_tester,
            speed_config=speed_config,
            speed_window=config.speed_window,
            speed_target=config.speed_target,
            skip_in_flight=config.skip_in_flight,
            max_workers=config.max_workers,
        )
    except InvalidTarget as e:
        logger.error("Invalid target in configuration: %s", e)
        return 2

    scheduler = MonitorScheduler(
        orchestrator,
        fast_interval_ms=int(config.fast_interval_s * 1000),
        slow_interval_ms=int(config.slow_interval_s * 1000),
        shutdown_timeout_ms=int(config.shutdown_timeout_s * 1000),
    )

    def request_quit(signum, _frame):
        logger.info("Received signal %d, shutting down", signum)
        app.quit()

    signal.signal(signal.SIGINT, request_quit)
    signal.signal(signal.SIGTERM, request_quit)

    # Python signal handlers only run between bytecodes, so wake the
    # interpreter periodically while Qt sits in its event loop
    wakeup = QTimer()
    wakeup.timeout.connect(lambda: None)
    wakeup.start(250)

    app.aboutToQuit.connect(scheduler.stop)
    scheduler.start()
    logger.info("Writing records to %s", config.records_path)
    exit_code = app.exec()
    log_problem_summary(ring)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

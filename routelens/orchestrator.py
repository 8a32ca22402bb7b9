"""Fan-out of per-target probe tasks onto a private worker pool."""

import logging
import threading
from collections import Counter
from dataclasses import replace
from datetime import datetime, time

from PySide6.QtCore import QObject, QThread, QThreadPool, Qt, Signal

from routelens.diagnostics import Prober, SpeedCapability, SpeedConfig, TraceCapability
from routelens.sink import RecordSink
from routelens.validation import validate_target
from routelens.window import in_window
from routelens.workers import PingTraceWorker, SpeedWorker

logger = logging.getLogger(__name__)


def ideal_thread_count() -> int:
    """CPU-based thread count reported by Qt."""
    return QThread.idealThreadCount()


def default_pool_size(target_count: int) -> int:
    """Worker threads needed so no target waits behind another.

    One thread per target for each of two overlapping fast cycles, plus
    one for a bandwidth test and one for a manual probe. Never below the
    CPU-based count.
    """
    return max(ideal_thread_count(), 2 * target_count + 2)


class ProbeOrchestrator(QObject):
    """Launches one independent worker per target for each cycle.

    Key features:
    - Targets are validated once, at construction, and never reloaded
    - Fast cycle: ping + traceroute per target, one record each
    - Slow cycle: bandwidth test gated by a daily time window
    - Failures are contained per worker; one target never blocks another
    - Every launched worker is tracked so shutdown can await it

    Overlap policy: with ``skip_in_flight=False`` a new cycle launches a
    task for a target even if the previous cycle's task for that target is
    still running. With ``skip_in_flight=True`` such targets are skipped
    for that cycle. Total parallelism is bounded by the pool's thread
    count, which by default leaves every target a thread of its own
    (see default_pool_size); excess tasks queue.

    In-flight bookkeeping runs on the worker threads (direct connection on
    the ``finished`` signal) under a lock, so it is accurate even when no
    event loop is running.
    """

    # Signals
    record_saved = Signal(object)  # MonitorRecord accepted by the sink
    task_failed = Signal(str, str)  # (target, error_msg)

    def __init__(
        self,
        targets,
        prober: Prober,
        sink: RecordSink,
        tracer: TraceCapability | None = None,
        speed_tester: SpeedCapability | None = None,
        speed_config: SpeedConfig | None = None,
        speed_window: str | None = None,
        speed_target: str | None = None,
        skip_in_flight: bool = False,
        max_workers: int | None = None,
        parent=None,
    ):
        """Initialize orchestrator.

        Args:
            targets: Ordered target strings; each must pass validation
            prober: ICMP prober used by the fast cycle
            sink: Destination for finished records
            tracer: Optional traceroute capability
            speed_tester: Optional bandwidth capability for the slow cycle
            speed_config: Template for bandwidth tests (target is filled in)
            speed_window: ``"HH:MM-HH:MM"`` window for the slow cycle, or None
            speed_target: Target for the slow cycle; defaults to the first target
            skip_in_flight: Skip targets whose previous fast task is still running
            max_workers: Upper bound on worker threads; None sizes the pool
                so every target has its own thread (see default_pool_size)
            parent: Qt parent object

        Raises:
            InvalidTarget: if any target (or speed_target) fails validation
        """
        super().__init__(parent)

        self._targets = tuple(
            validate_target(t.strip() if isinstance(t, str) else t) for t in targets
        )
        if speed_target:
            validate_target(speed_target)

        self.prober = prober
        self.sink = sink
        self.tracer = tracer
        self.speed_tester = speed_tester
        self.speed_config = speed_config or SpeedConfig()
        self.speed_window = speed_window
        self.speed_target = speed_target
        self.skip_in_flight = skip_in_flight

        # Private pool so shutdown waits only for our own workers
        self.thread_pool = QThreadPool(self)
        self.thread_pool.setMaxThreadCount(max_workers or default_pool_size(len(self._targets)))

        self._lock = threading.Lock()
        self._in_flight = Counter()  # {(kind, target): running worker count}

    def get_targets(self):
        """Get the targets captured at construction."""
        return list(self._targets)

    def run_fast_cycle(self) -> int:
        """Launch a ping + traceroute worker per target.

        Returns:
            Number of workers launched
        """
        launched = 0
        skipped = 0
        for target in self._targets:
            if self.skip_in_flight and self.in_flight(target, kind=PingTraceWorker.kind):
                skipped += 1
                continue
            self._launch(PingTraceWorker(self.prober, self.tracer, self.sink, target))
            launched += 1

        if skipped:
            logger.info("Fast cycle: launched %d tasks, skipped %d in flight", launched, skipped)
        else:
            logger.debug("Fast cycle: launched %d tasks", launched)
        return launched

    def run_slow_cycle(self, now: datetime | time | None = None) -> int:
        """Launch a bandwidth worker if the time window is open.

        Args:
            now: Local time to check the window against (defaults to now)

        Returns:
            Number of workers launched (0 when skipped)
        """
        if self.speed_tester is None:
            logger.debug("Slow cycle skipped: no bandwidth capability configured")
            return 0

        if not in_window(self.speed_window, now):
            logger.info("Skipping speed test: not in allowed time window (%s)", self.speed_window)
            return 0

        target = self.speed_target or (self._targets[0] if self._targets else None)
        if target is None:
            logger.debug("Slow cycle skipped: no targets")
            return 0

        self._launch_speed(target)
        return 1

    def trigger_probe(self, target: str, run_trace: bool = True, run_speed: bool = False) -> int:
        """Probe one target outside the regular cadence.

        Runs asynchronously on the same pool as scheduled cycles. The
        manual speed test ignores the time window.

        Returns:
            Number of workers launched

        Raises:
            InvalidTarget: if target fails validation
        """
        target = validate_target(target.strip() if isinstance(target, str) else target)

        tracer = self.tracer if run_trace else None
        self._launch(PingTraceWorker(self.prober, tracer, self.sink, target))
        launched = 1

        if run_speed:
            if self.speed_tester is None:
                logger.warning("Manual speed test requested for %s but none configured", target)
            else:
                self._launch_speed(target)
                launched += 1

        logger.info(
            "Manual probe triggered: target=%s, trace=%s, speed=%s", target, run_trace, run_speed
        )
        return launched

    def in_flight(self, target: str | None = None, kind: str | None = None) -> int:
        """Count running workers, optionally filtered by target and kind."""
        with self._lock:
            return sum(
                count
                for (task_kind, task_target), count in self._in_flight.items()
                if (target is None or task_target == target)
                and (kind is None or task_kind == kind)
            )

    def wait_for_done(self, timeout_ms: int = -1) -> bool:
        """Block until all launched workers finish or the timeout elapses.

        Returns:
            True if every worker finished
        """
        return self.thread_pool.waitForDone(timeout_ms)

    def _launch_speed(self, target: str):
        config = replace(self.speed_config, target=target)
        self._launch(SpeedWorker(self.speed_tester, self.sink, config))

    def _launch(self, worker):
        """Register and start a worker."""
        key = (worker.kind, worker.target)
        with self._lock:
            self._in_flight[key] += 1

        worker.signals.record_saved.connect(
            self._on_record_saved, type=Qt.ConnectionType.DirectConnection
        )
        worker.signals.failed.connect(self._on_task_failed, type=Qt.ConnectionType.DirectConnection)
        worker.signals.finished.connect(
            lambda _target, key=key: self._on_worker_finished(key),
            type=Qt.ConnectionType.DirectConnection,
        )

        # Execute in thread pool
        self.thread_pool.start(worker)

    def _on_record_saved(self, record):
        """Re-emit from the orchestrator, which outlives the worker."""
        self.record_saved.emit(record)

    def _on_task_failed(self, target: str, error_msg: str):
        self.task_failed.emit(target, error_msg)

    def _on_worker_finished(self, key):
        """Clear in-flight bookkeeping. Runs on the worker thread."""
        with self._lock:
            self._in_flight[key] -= 1
            if self._in_flight[key] <= 0:
                del self._in_flight[key]

        logger.debug("Worker finished: kind=%s, target=%s", *key)


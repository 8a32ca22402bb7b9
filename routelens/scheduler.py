"""Two-cadence probe scheduler driven by the Qt event loop."""

import logging

from PySide6.QtCore import QObject, QTimer, Signal

from routelens.orchestrator import ProbeOrchestrator

logger = logging.getLogger(__name__)


class MonitorScheduler(QObject):
    """Dispatches fast (ping/trace) and slow (bandwidth) cycles on two timers.

    Key features:
    - Two independent QTimers, one per cadence
    - Dispatch only: cycle work runs on the orchestrator's worker pool, so
      a slow cycle never delays the next tick (ticks may overlap in effect)
    - Ticks that arrive after stop() are ignored
    - stop() waits for in-flight workers, bounded by a shutdown timeout

    All state is owned by the instance and touched on the thread that owns
    it (the Qt event loop thread).
    """

    # Signals
    started = Signal()
    stopped = Signal(bool)  # True if all in-flight workers drained in time
    cycle_dispatched = Signal(str, int)  # (cycle name, workers launched)

    def __init__(
        self,
        orchestrator: ProbeOrchestrator,
        fast_interval_ms: int = 30_000,
        slow_interval_ms: int = 3_600_000,
        shutdown_timeout_ms: int = 10_000,
        parent=None,
    ):
        """Initialize scheduler.

        Args:
            orchestrator: Launches the per-target workers for each cycle
            fast_interval_ms: Ping/traceroute cadence in milliseconds
            slow_interval_ms: Bandwidth cadence in milliseconds
            shutdown_timeout_ms: Upper bound on waiting for workers in stop()
            parent: Qt parent object
        """
        super().__init__(parent)
        if fast_interval_ms <= 0 or slow_interval_ms <= 0:
            raise ValueError("intervals must be positive")

        self.orchestrator = orchestrator
        self.fast_interval_ms = fast_interval_ms
        self.slow_interval_ms = slow_interval_ms
        self.shutdown_timeout_ms = shutdown_timeout_ms

        self.fast_timer = QTimer(self)
        self.fast_timer.timeout.connect(self._on_fast_tick)

        self.slow_timer = QTimer(self)
        self.slow_timer.timeout.connect(self._on_slow_tick)

        self.is_running = False
        self._fast_cycles = 0
        self._slow_cycles = 0

    def start(self):
        """Arm both timers. The owning event loop performs the dispatch."""
        if self.is_running:
            return

        self.is_running = True
        self.fast_timer.start(self.fast_interval_ms)
        self.slow_timer.start(self.slow_interval_ms)
        logger.info(
            "Monitor scheduler started: %d targets, fast=%dms, slow=%dms",
            len(self.orchestrator.get_targets()),
            self.fast_interval_ms,
            self.slow_interval_ms,
        )
        self.started.emit()

    def stop(self) -> bool:
        """Disarm both timers and wait for in-flight workers.

        Returns:
            True if every worker finished within the shutdown timeout
        """
        if not self.is_running:
            return True

        self.is_running = False
        self.fast_timer.stop()
        self.slow_timer.stop()

        pending = self.orchestrator.in_flight()
        drained = self.orchestrator.wait_for_done(self.shutdown_timeout_ms)
        if drained:
            logger.info("Monitor scheduler stopped (%d workers drained)", pending)
        else:
            logger.warning(
                "Monitor scheduler stopped with %d workers still running after %dms",
                self.orchestrator.in_flight(),
                self.shutdown_timeout_ms,
            )
        self.stopped.emit(drained)
        return drained

    def set_intervals(self, fast_interval_ms: int | None = None, slow_interval_ms: int | None = None):
        """Update cadences; running timers pick up the change immediately."""
        if fast_interval_ms is not None:
            self.fast_interval_ms = fast_interval_ms
            if self.fast_timer.isActive():
                self.fast_timer.setInterval(fast_interval_ms)
        if slow_interval_ms is not None:
            self.slow_interval_ms = slow_interval_ms
            if self.slow_timer.isActive():
                self.slow_timer.setInterval(slow_interval_ms)
        logger.debug(
            "Intervals updated: fast=%dms, slow=%dms", self.fast_interval_ms, self.slow_interval_ms
        )

    def trigger_probe(self, target: str, run_trace: bool = True, run_speed: bool = False) -> int:
        """Out-of-band single-target probe, independent of the timers."""
        return self.orchestrator.trigger_probe(target, run_trace=run_trace, run_speed=run_speed)

    def _on_fast_tick(self):
        if not self.is_running:
            return
        self._fast_cycles += 1
        launched = self.orchestrator.run_fast_cycle()
        self.cycle_dispatched.emit("fast", launched)

    def _on_slow_tick(self):
        if not self.is_running:
            return
        self._slow_cycles += 1
        launched = self.orchestrator.run_slow_cycle()
        self.cycle_dispatched.emit("slow", launched)

    def get_stats(self):
        """Get scheduler statistics.

        Returns:
            Dict with scheduler state info
        """
        return {
            "targets": len(self.orchestrator.get_targets()),
            "running": self.is_running,
            "in_flight": self.orchestrator.in_flight(),
            "fast_cycles": self._fast_cycles,
            "slow_cycles": self._slow_cycles,
            "fast_interval_ms": self.fast_interval_ms,
            "slow_interval_ms": self.slow_interval_ms,
        }

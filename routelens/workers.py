"""Worker classes for background probe tasks."""

import logging

from PySide6.QtCore import QObject, QRunnable, Signal

from routelens.diagnostics import Prober, SpeedCapability, SpeedConfig, TraceCapability
from routelens.errors import DiagnosticUnavailable, ProbeTransportError, SinkError
from routelens.models import MonitorRecord
from routelens.sink import RecordSink

logger = logging.getLogger(__name__)


class WorkerSignals(QObject):
    """Signals for communicating between worker threads and the owner."""

    record_saved = Signal(object)  # Emits MonitorRecord after the sink accepted it
    failed = Signal(str, str)  # Emits (target, error message)
    finished = Signal(str)  # Emits target when the worker completes


class _ProbeWorker(QRunnable):
    """Shared run() scaffolding: every outcome is contained here."""

    kind = "probe"

    def __init__(self, sink: RecordSink, target: str):
        super().__init__()
        self.sink = sink
        self.target = target
        self.signals = WorkerSignals()

    def build_record(self) -> MonitorRecord | None:
        raise NotImplementedError

    def run(self):
        """Execute the task in a background thread."""
        try:
            logger.debug("Worker starting: kind=%s, target=%s", self.kind, self.target)

            record = self.build_record()
            if record is None:
                return

            try:
                self.sink.save(record)
            except SinkError as e:
                logger.warning("Record dropped: target=%s, error=%s", self.target, e)
                self.signals.failed.emit(self.target, str(e))
                return

            self.signals.record_saved.emit(record)
            logger.debug("Worker completed: kind=%s, target=%s", self.kind, self.target)

        except Exception as e:
            logger.exception(
                "Worker exception: kind=%s, target=%s, error=%s", self.kind, self.target, str(e)
            )
            self.signals.failed.emit(self.target, str(e))

        finally:
            # Always signal completion
            self.signals.finished.emit(self.target)


class PingTraceWorker(_ProbeWorker):
    """Pings one target, traces it on success and sinks the merged record.

    A ping failure ends the task without a record. A trace failure only
    degrades the record to ping data with an empty trace payload.
    """

    kind = "ping"

    def __init__(
        self,
        prober: Prober,
        tracer: TraceCapability | None,
        sink: RecordSink,
        target: str,
    ):
        super().__init__(sink, target)
        self.prober = prober
        self.tracer = tracer

    def build_record(self) -> MonitorRecord | None:
        try:
            ping = self.prober.probe(self.target)
        except ProbeTransportError as e:
            logger.warning("Ping failed for %s: %s", self.target, e)
            self.signals.failed.emit(self.target, str(e))
            return None

        trace = None
        if self.tracer is not None:
            try:
                trace = self.tracer.trace(self.target)
            except DiagnosticUnavailable as e:
                logger.info("Traceroute unavailable for %s: %s", self.target, e)
            except Exception:
                logger.exception("Traceroute crashed for %s", self.target)

        return MonitorRecord.from_results(self.target, ping=ping, trace=trace)


class SpeedWorker(_ProbeWorker):
    """Runs a bandwidth test and sinks a record carrying only speed fields."""

    kind = "speed"

    def __init__(self, tester: SpeedCapability, sink: RecordSink, config: SpeedConfig):
        super().__init__(sink, config.target)
        self.tester = tester
        self.config = config

    def build_record(self) -> MonitorRecord | None:
        try:
            speed = self.tester.measure(self.config)
        except DiagnosticUnavailable as e:
            logger.warning("Speed test failed for %s: %s", self.target, e)
            self.signals.failed.emit(self.target, str(e))
            return None

        return MonitorRecord.from_results(self.target, speed=speed)

"""Monitor configuration loaded from ROUTELENS_* environment variables."""

import logging
import os
from dataclasses import dataclass, field

from routelens.diagnostics import DEFAULT_IPERF_PORT, DEFAULT_SSH_PORT, DEFAULT_TEST_BYTES

logger = logging.getLogger(__name__)

ENV_PREFIX = "ROUTELENS_"
SPEED_METHODS = ("ssh", "iperf")


@dataclass
class MonitorConfig:
    """Opaque inputs for the probing engine."""

    targets: list[str] = field(default_factory=list)
    fast_interval_s: float = 30.0
    slow_interval_s: float = 3600.0
    speed_window: str | None = None
    speed_target: str | None = None
    speed_method: str = "ssh"
    ssh_user: str = ""
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_key_path: str = ""
    iperf_port: int = DEFAULT_IPERF_PORT
    test_bytes: int = DEFAULT_TEST_BYTES
    ping_count: int = 5
    ping_interval_s: float = 1.0
    ping_timeout_s: float = 2.0
    trace_cycles: int = 10
    records_path: str = "data/routelens.csv"
    shutdown_timeout_s: float = 10.0
    skip_in_flight: bool = False
    max_workers: int | None = None

    def __post_init__(self):
        """Reject values the engine cannot run with."""
        if self.fast_interval_s <= 0 or self.slow_interval_s <= 0:
            raise ValueError("cycle intervals must be positive")
        if self.ping_count <= 0:
            raise ValueError("ping_count must be positive")
        if self.ping_timeout_s <= 0:
            raise ValueError("ping_timeout_s must be positive")
        if self.ping_interval_s < 0:
            raise ValueError("ping_interval_s must not be negative")
        if self.test_bytes <= 0:
            raise ValueError("test_bytes must be positive")
        if self.trace_cycles <= 0:
            raise ValueError("trace_cycles must be positive")
        if self.shutdown_timeout_s < 0:
            raise ValueError("shutdown_timeout_s must not be negative")
        for name in ("ssh_port", "iperf_port"):
            port = getattr(self, name)
            if not 1 <= port <= 65535:
                raise ValueError(f"{name} must be between 1 and 65535, got {port}")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if self.speed_method not in SPEED_METHODS:
            raise ValueError(f"speed_method must be one of {', '.join(SPEED_METHODS)}")


def _parse(environ, name: str, convert, default):
    raw = environ.get(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return convert(raw)
    except ValueError as e:
        raise ValueError(f"{ENV_PREFIX}{name}: invalid value {raw!r}") from e


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw}")


def load_config(environ=None) -> MonitorConfig:
    """Build a MonitorConfig from environment variables.

    Unset variables keep their defaults. ``ROUTELENS_TARGETS`` is a
    comma-separated list; blank entries are dropped.

    Raises:
        ValueError: naming the variable when a value cannot be parsed
    """
    if environ is None:
        environ = os.environ

    defaults = MonitorConfig()
    targets_raw = environ.get(ENV_PREFIX + "TARGETS", "")
    targets = [t.strip() for t in targets_raw.split(",") if t.strip()]

    config = MonitorConfig(
        targets=targets,
        fast_interval_s=_parse(environ, "FAST_INTERVAL", float, defaults.fast_interval_s),
        slow_interval_s=_parse(environ, "SLOW_INTERVAL", float, defaults.slow_interval_s),
        speed_window=environ.get(ENV_PREFIX + "SPEED_WINDOW") or None,
        speed_target=environ.get(ENV_PREFIX + "SPEED_TARGET") or None,
        speed_method=_parse(environ, "SPEED_METHOD", str.lower, defaults.speed_method),
        ssh_user=environ.get(ENV_PREFIX + "SSH_USER", ""),
        ssh_port=_parse(environ, "SSH_PORT", int, defaults.ssh_port),
        ssh_key_path=environ.get(ENV_PREFIX + "SSH_KEY_PATH", ""),
        iperf_port=_parse(environ, "IPERF_PORT", int, defaults.iperf_port),
        test_bytes=_parse(environ, "TEST_BYTES", int, defaults.test_bytes),
        ping_count=_parse(environ, "PING_COUNT", int, defaults.ping_count),
        ping_interval_s=_parse(environ, "PING_INTERVAL", float, defaults.ping_interval_s),
        ping_timeout_s=_parse(environ, "PING_TIMEOUT", float, defaults.ping_timeout_s),
        trace_cycles=_parse(environ, "TRACE_CYCLES", int, defaults.trace_cycles),
        records_path=environ.get(ENV_PREFIX + "RECORDS_PATH") or defaults.records_path,
        shutdown_timeout_s=_parse(
            environ, "SHUTDOWN_TIMEOUT", float, defaults.shutdown_timeout_s
        ),
        skip_in_flight=_parse(environ, "SKIP_IN_FLIGHT", _parse_bool, defaults.skip_in_flight),
        max_workers=_parse(environ, "MAX_WORKERS", int, defaults.max_workers),
    )
    logger.debug("Configuration loaded: %d targets", len(config.targets))
    return config

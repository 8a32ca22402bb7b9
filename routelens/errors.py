"""Exception types raised by the probing engine."""


class RouteLensError(Exception):
    """Base class for all probing engine errors."""


class InvalidTarget(RouteLensError, ValueError):
    """Target string failed validation and must not reach a socket or process."""


class ProbeTransportError(RouteLensError):
    """Target could not be resolved or the probe socket could not be opened."""


class ProbeTimeout(RouteLensError):
    """A single echo request got no usable reply before its deadline."""


class DiagnosticUnavailable(RouteLensError):
    """A traceroute or bandwidth tool is missing, failed, or produced unparsable output."""


class SinkError(RouteLensError):
    """The record sink failed to persist a record."""

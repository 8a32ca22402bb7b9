"""ICMP echo prober using raw or unprivileged datagram sockets."""

import logging
import os
import socket
import statistics
import struct
import time
from datetime import datetime

from routelens.errors import ProbeTimeout, ProbeTransportError
from routelens.models import PingResult, loss_rate
from routelens.validation import validate_target

logger = logging.getLogger(__name__)

ICMP_ECHO_REQUEST = 8
ICMP_ECHO_REPLY = 0
ICMPV6_ECHO_REQUEST = 128
ICMPV6_ECHO_REPLY = 129

ECHO_PAYLOAD = b"RouteLens-Ping"
RECV_BUFFER = 1500


def checksum(data: bytes) -> int:
    """Compute the Internet checksum (RFC 1071) of an ICMP message."""
    if len(data) % 2:
        data += b"\x00"

    total = 0
    for i in range(0, len(data), 2):
        total += (data[i] << 8) + data[i + 1]

    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return (~total) & 0xFFFF


def build_echo_request(
    identifier: int,
    sequence: int,
    payload: bytes = ECHO_PAYLOAD,
    family: int = socket.AF_INET,
) -> bytes:
    """Build an ICMP (or ICMPv6) Echo Request message.

    The ICMPv6 checksum covers a pseudo-header only the kernel knows, so it
    is left at zero for the kernel to fill in.
    """
    icmp_type = ICMPV6_ECHO_REQUEST if family == socket.AF_INET6 else ICMP_ECHO_REQUEST
    identifier &= 0xFFFF
    sequence &= 0xFFFF

    header = struct.pack("!BBHHH", icmp_type, 0, 0, identifier, sequence)
    if family == socket.AF_INET6:
        return header + payload

    csum = checksum(header + payload)
    header = struct.pack("!BBHHH", icmp_type, 0, csum, identifier, sequence)
    return header + payload


def parse_icmp_type(packet: bytes, has_ip_header: bool = False) -> int:
    """Return the ICMP type of a received message.

    Raw IPv4 sockets deliver the IP header in front of the ICMP message;
    its length comes from the IHL field.

    Raises:
        ValueError: if the packet is too short to hold an ICMP header.
    """
    offset = 0
    if has_ip_header:
        if not packet:
            raise ValueError("empty packet")
        offset = (packet[0] & 0x0F) * 4
    if len(packet) < offset + 8:
        raise ValueError(f"truncated ICMP message ({len(packet)} bytes)")
    return packet[offset]


def compute_ping_stats(sent: int, rtts_ms: list[float]) -> PingResult:
    """Aggregate per-echo RTT samples into a PingResult.

    min/max/avg only cover successful samples and are zero when there are
    none. A fully lost run is a normal result, not an error.
    """
    received = len(rtts_ms)
    if received:
        min_rtt = min(rtts_ms)
        max_rtt = max(rtts_ms)
        avg_rtt = statistics.fmean(rtts_ms)
    else:
        min_rtt = max_rtt = avg_rtt = 0.0

    return PingResult(
        packets_sent=sent,
        packets_received=received,
        min_rtt_ms=round(min_rtt, 3),
        max_rtt_ms=round(max_rtt, 3),
        avg_rtt_ms=round(avg_rtt, 3),
        loss_rate=loss_rate(sent, received),
        timestamp=datetime.now(),
    )


def has_raw_socket_privilege() -> bool:
    """True when the process may open raw ICMP sockets (effective uid 0)."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return False
    return geteuid() == 0


class IcmpProber:
    """Sends a series of ICMP echo requests and measures round-trip time.

    The privilege mode is decided once, at construction: privileged probers
    use ``SOCK_RAW`` sockets, others fall back to the unprivileged
    ``SOCK_DGRAM`` ICMP sockets supported by Linux and macOS.

    **Relaxed reply matching:** any Echo Reply read from the socket within
    the deadline counts as the reply to the request just sent. Identifier
    and sequence number are not checked, so a late reply to an earlier
    request (or a reply meant for another process on a raw socket) is
    accepted. Any other ICMP type counts as a lost echo.
    """

    def __init__(
        self,
        count: int = 5,
        interval: float = 1.0,
        timeout: float = 2.0,
        privileged: bool | None = None,
        socket_factory=socket.socket,
        sleep=time.sleep,
    ):
        """Initialize prober defaults.

        Args:
            count: Echo requests per run
            interval: Seconds to wait between echo requests
            timeout: Per-echo read deadline in seconds
            privileged: Force raw (True) or datagram (False) sockets.
                        Detected from the effective uid when None.
            socket_factory: Callable with the ``socket.socket`` signature
            sleep: Callable used for the inter-probe delay
        """
        if count < 0:
            raise ValueError("count must be non-negative")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.count = count
        self.interval = interval
        self.timeout = timeout
        self.privileged = has_raw_socket_privilege() if privileged is None else privileged
        self.identifier = os.getpid() & 0xFFFF
        self._socket_factory = socket_factory
        self._sleep = sleep

        logger.debug(
            "IcmpProber initialized: count=%d, interval=%.2fs, timeout=%.2fs, privileged=%s",
            count,
            interval,
            timeout,
            self.privileged,
        )

    def probe(
        self,
        target: str,
        count: int | None = None,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> PingResult:
        """Run one echo series against target and return its statistics.

        Raises:
            InvalidTarget: if target fails validation
            ProbeTransportError: if target cannot be resolved or the socket
                cannot be opened. No partial result is returned.
        """
        validate_target(target)
        count = self.count if count is None else count
        interval = self.interval if interval is None else interval
        timeout = self.timeout if timeout is None else timeout

        family, sockaddr = self._resolve(target)
        sock = self._open_socket(family)

        rtts = []
        sent = 0
        try:
            sock.settimeout(timeout)
            for seq in range(1, count + 1):
                sent += 1
                try:
                    rtt = self._exchange(sock, family, sockaddr, seq)
                    rtts.append(rtt)
                except ProbeTimeout as e:
                    logger.debug("Echo lost: target=%s, seq=%d, reason=%s", target, seq, e)
                except OSError as e:
                    logger.debug("Echo failed: target=%s, seq=%d, error=%s", target, seq, e)

                if seq < count:
                    self._sleep(interval)
        finally:
            sock.close()

        result = compute_ping_stats(sent, rtts)
        logger.debug(
            "Ping finished: target=%s, sent=%d, received=%d, avg=%.3fms, loss=%.1f%%",
            target,
            result.packets_sent,
            result.packets_received,
            result.avg_rtt_ms,
            result.loss_rate,
        )
        return result

    def _resolve(self, target: str):
        """Resolve target to (family, sockaddr), preferring IPv4."""
        try:
            infos = socket.getaddrinfo(target, None, 0, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ProbeTransportError(f"cannot resolve {target}: {e}") from e

        for family in (socket.AF_INET, socket.AF_INET6):
            for info_family, _type, _proto, _name, sockaddr in infos:
                if info_family == family:
                    return family, sockaddr
        raise ProbeTransportError(f"no IPv4 or IPv6 address for {target}")

    def _open_socket(self, family: int):
        """Open the echo socket for this prober's privilege mode."""
        proto = socket.IPPROTO_ICMPV6 if family == socket.AF_INET6 else socket.IPPROTO_ICMP
        sock_type = socket.SOCK_RAW if self.privileged else socket.SOCK_DGRAM
        try:
            return self._socket_factory(family, sock_type, proto)
        except OSError as e:
            raise ProbeTransportError(
                f"cannot open ICMP socket (privileged={self.privileged}): {e}"
            ) from e

    def _exchange(self, sock, family: int, sockaddr, seq: int) -> float:
        """Send one echo request and wait for a reply. Returns RTT in ms."""
        packet = build_echo_request(self.identifier, seq, family=family)
        # Raw IPv4 sockets hand back the IP header, the others do not
        has_ip_header = self.privileged and family == socket.AF_INET
        expected = ICMPV6_ECHO_REPLY if family == socket.AF_INET6 else ICMP_ECHO_REPLY

        start = time.perf_counter()
        sock.sendto(packet, sockaddr)
        try:
            data, _addr = sock.recvfrom(RECV_BUFFER)
        except socket.timeout as e:
            raise ProbeTimeout(f"no reply within deadline for seq {seq}") from e
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        try:
            icmp_type = parse_icmp_type(data, has_ip_header)
        except ValueError as e:
            raise ProbeTimeout(f"malformed reply for seq {seq}: {e}") from e
        if icmp_type != expected:
            raise ProbeTimeout(f"got non-echo reply type {icmp_type} for seq {seq}")
        return elapsed_ms

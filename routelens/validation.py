"""Target validation applied before any socket or subprocess sees a target."""

import ipaddress
import logging
import re

from routelens.errors import InvalidTarget

logger = logging.getLogger(__name__)

MAX_TARGET_LENGTH = 253

# Shell metacharacters rejected outright, before any grammar check
FORBIDDEN_CHARS = frozenset(";|&$`\"'<>(){}[]\\!#*?~")

_HOSTNAME_LABEL = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
_DOTTED_NUMERIC = re.compile(r"^[0-9.]+$")


def _is_ip_literal(target: str) -> bool:
    try:
        ipaddress.ip_address(target)
    except ValueError:
        return False
    return True


def _is_hostname(target: str) -> bool:
    name = target[:-1] if target.endswith(".") else target
    if not name:
        return False
    # Dotted digits that did not parse as IPv4 are malformed addresses, not names
    if _DOTTED_NUMERIC.match(name):
        return False
    return all(_HOSTNAME_LABEL.match(label) for label in name.split("."))


def validate_target(target: str) -> str:
    """Validate a hostname, IPv4 or IPv6 literal and return it unchanged.

    Raises:
        InvalidTarget: if the target is empty, longer than 253 characters,
            contains a shell metacharacter or control character, or is not
            a syntactically valid hostname or IP address.
    """
    if not isinstance(target, str) or not target:
        raise InvalidTarget("target cannot be empty")
    if len(target) > MAX_TARGET_LENGTH:
        raise InvalidTarget(f"target too long (max {MAX_TARGET_LENGTH} characters)")

    bad = sorted(set(target) & FORBIDDEN_CHARS)
    if bad:
        logger.warning("Rejected target with forbidden characters: %r", target)
        raise InvalidTarget(f"target contains invalid characters: {''.join(bad)}")
    if any(ch.isspace() or not ch.isprintable() for ch in target):
        raise InvalidTarget("target contains whitespace or control characters")

    if _is_ip_literal(target) or _is_hostname(target):
        return target

    raise InvalidTarget("target format invalid: must be hostname or IP address")


def is_valid_target(target: str) -> bool:
    """Boolean form of validate_target()."""
    try:
        validate_target(target)
    except InvalidTarget:
        return False
    return True

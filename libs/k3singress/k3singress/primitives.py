"""
Low level NGINX directive helpers.

Address formatting, variable naming and value validation shared by the
policy and location builders.
"""

import ipaddress
import logging
import re
import uuid
from typing import Any, Iterable

from .types import Location

logger = logging.getLogger(__name__)

# Namespace for deny variable names, fixed so names survive restarts
DENY_NAMESPACE = uuid.UUID("9d1e4c1a-6b1f-5d7e-9a57-3f0b2c8e4a10")

RESOLVER_VALID = "30s"

_BUFFER_SIZE_RE = re.compile(r"[0-9]+[kKmM]?")


def format_ip(address: str) -> str:
    """
    Format an address for use inside an NGINX directive.

    NGINX needs IPv6 literals surrounded by brackets. IPv4 addresses,
    hostnames and anything that does not parse as IPv6 are returned as is.

    Args:
        address: IP literal or hostname

    Returns:
        The address, bracketed when it is IPv6
    """
    if ":" not in address:
        return address
    try:
        ipaddress.IPv6Address(address)
    except ValueError:
        return address
    return f"[{address}]"


def header_variable(header: str) -> str:
    """Map a header name to its NGINX variable suffix (e.g. 'X-Real-IP' -> 'x_real_ip')."""
    return header.lower().replace("-", "_")


def build_forwarded_for(header: str) -> str:
    """
    Build the variable holding an inbound request header.

    Args:
        header: Header name (e.g. 'X-Forwarded-For')

    Returns:
        Variable reference (e.g. '$http_x_forwarded_for')
    """
    return f"$http_{header_variable(header)}"


def is_valid_client_body_buffer_size(value: Any) -> bool:
    """
    Check a client_body_buffer_size value.

    Accepts a number with an optional single k/m unit (case-insensitive).
    """
    if not isinstance(value, str) or not value:
        return False
    if _BUFFER_SIZE_RE.fullmatch(value):
        return True
    logger.error(
        f"client_body_buffer_size '{value}' was provided in an incorrect format, "
        "hence it will not be set."
    )
    return False


def _format_resolver(address: str) -> str:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return format_ip(address)
    if ip.version == 6:
        return f"[{ip.compressed}]"
    return str(ip)


def build_resolvers(addresses: Iterable[str]) -> str:
    """
    Build the resolver directive.

    Args:
        addresses: Name server addresses, IPv4 or IPv6

    Returns:
        resolver directive, or empty string if no usable address was given
    """
    parts = [_format_resolver(a.strip()) for a in addresses if a and a.strip()]
    if not parts:
        return ""
    return " ".join(["resolver"] + parts + [f"valid={RESOLVER_VALID};"])


def build_deny_variable(key: str) -> str:
    """
    Build a map/geo variable name for a deny rule.

    The name is derived from the key alone, so equal keys give equal names in
    every process.

    Args:
        key: Identifying string, usually '<hostname>_<location path>'

    Returns:
        Variable reference (e.g. '$deny_3c8b...')
    """
    return f"$deny_{uuid.uuid5(DENY_NAMESPACE, key).hex}"


def is_location_allowed(location: Location) -> bool:
    """Check whether a location serves traffic (not denied)."""
    return not location.denied

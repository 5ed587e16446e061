"""
Policy directive builders.

Rate limiting, upstream retry and external authentication statements for a
single location, plus the http level zones the rate limits refer to.
"""

import base64
from typing import List, Sequence
from urllib.parse import parse_qs, urlsplit

from .primitives import header_variable
from .types import Location, RateLimitConfig, Server

NON_IDEMPOTENT = "non_idempotent"

AUTH_LOCATION_PREFIX = "/_external-auth-"

REDIRECT_PARAM = "rd"
REDIRECT_VALUE = "$pass_access_scheme://$http_host$request_uri"

LOG_FORMAT_UPSTREAM = (
    '{} - [$the_real_ip] - $remote_user [$time_local] "$request" $status '
    '$body_bytes_sent "$http_referer" "$http_user_agent" $request_length '
    "$request_time [$proxy_upstream_name] $upstream_addr "
    "$upstream_response_length $upstream_response_time $upstream_status"
)


def build_rate_limit(location: Location) -> List[str]:
    """
    Build the rate limiting statements of a location.

    Statements are emitted in a fixed order: connections, requests per
    second, requests per minute, rate after, rate. Disabled sub-policies
    produce nothing.

    Args:
        location: Location to limit

    Returns:
        List of statements
    """
    rate_limit = location.rate_limit
    limits: List[str] = []

    if rate_limit.connections.limit > 0:
        limits.append(
            f"limit_conn {rate_limit.connections.name} {rate_limit.connections.limit};"
        )

    # Requests beyond the burst are rejected, never queued
    if rate_limit.rps.limit > 0:
        limits.append(
            f"limit_req zone={rate_limit.rps.name} burst={rate_limit.rps.burst} nodelay;"
        )

    if rate_limit.rpm.limit > 0:
        limits.append(
            f"limit_req zone={rate_limit.rpm.name} burst={rate_limit.rpm.burst} nodelay;"
        )

    if rate_limit.limit_rate_after > 0:
        limits.append(f"limit_rate_after {rate_limit.limit_rate_after}k;")

    if rate_limit.limit_rate > 0:
        limits.append(f"limit_rate {rate_limit.limit_rate}k;")

    return limits


def build_rate_limit_zones(servers: Sequence[Server]) -> List[str]:
    """
    Build the http level zone statements for every rate limited location.

    Policies without an id have no zone key and are skipped.

    Args:
        servers: All servers of the render pass

    Returns:
        Sorted list of distinct zone statements
    """
    zones = set()
    for server in servers:
        for location in server.locations:
            rate_limit = location.rate_limit
            if not rate_limit.id:
                continue
            key = f"$limit_{rate_limit.id}"

            if rate_limit.connections.limit > 0:
                zones.add(
                    f"limit_conn_zone {key} zone={rate_limit.connections.name}:"
                    f"{rate_limit.connections.shared_size}m;"
                )

            if rate_limit.rpm.limit > 0:
                zones.add(
                    f"limit_req_zone {key} zone={rate_limit.rpm.name}:"
                    f"{rate_limit.rpm.shared_size}m rate={rate_limit.rpm.limit}r/m;"
                )

            if rate_limit.rps.limit > 0:
                zones.add(
                    f"limit_req_zone {key} zone={rate_limit.rps.name}:"
                    f"{rate_limit.rps.shared_size}m rate={rate_limit.rps.limit}r/s;"
                )

    return sorted(zones)


def filter_rate_limits(servers: Sequence[Server]) -> List[RateLimitConfig]:
    """Return each rate limit policy with an id once, in first-seen order."""
    found = set()
    rate_limits: List[RateLimitConfig] = []
    for server in servers:
        for location in server.locations:
            rate_limit = location.rate_limit
            if rate_limit.id and rate_limit.id not in found:
                found.add(rate_limit.id)
                rate_limits.append(rate_limit)
    return rate_limits


def build_next_upstream(next_upstream: str, retry_non_idempotent: bool) -> str:
    """
    Merge the non_idempotent retry condition into a proxy_next_upstream value.

    The token is appended only when requested and not already present, so
    applying this twice gives the same result as once.

    Args:
        next_upstream: Space separated conditions (e.g. 'timeout http_502')
        retry_non_idempotent: Also retry POST, LOCK, PATCH... requests

    Returns:
        Merged conditions
    """
    tokens = next_upstream.split()
    if not retry_non_idempotent or NON_IDEMPOTENT in tokens:
        return next_upstream
    return " ".join(tokens + [NON_IDEMPOTENT])


def build_auth_location(location: Location) -> str:
    """
    Build the internal location name of the external auth sub-request.

    The path is base64url encoded without padding, so distinct paths never
    share a name and the same path always gets the same one.

    Args:
        location: Location with external auth

    Returns:
        Internal location path, or empty string without external auth
    """
    if not location.external_auth or not location.external_auth.url:
        return ""
    encoded = base64.urlsafe_b64encode(location.path.encode()).decode()
    return f"{AUTH_LOCATION_PREFIX}{encoded.replace('=', '')}"


def build_auth_response_headers(headers: Sequence[str]) -> List[str]:
    """
    Build statements copying auth response headers onto the proxied request.

    Args:
        headers: Header names returned by the auth service

    Returns:
        Two statements per header: capture into $authHeader<i>, then set it
        back under the original header name
    """
    statements: List[str] = []
    for i, header in enumerate(headers):
        statements.append(
            f"auth_request_set $authHeader{i} $upstream_http_{header_variable(header)};"
        )
        statements.append(f"proxy_set_header '{header}' $authHeader{i};")
    return statements


def build_auth_sign_url(url: str) -> str:
    """
    Add the redirect callback parameter to an auth sign-in URL.

    A URL whose query already carries the parameter is left untouched.
    """
    query = urlsplit(url).query
    if REDIRECT_PARAM in parse_qs(query, keep_blank_values=True):
        return url
    if query:
        separator = "&"
    elif url.endswith("?"):
        separator = ""
    else:
        separator = "?"
    return f"{url}{separator}{REDIRECT_PARAM}={REDIRECT_VALUE}"


def build_log_format_upstream(use_proxy_protocol: bool = False) -> str:
    """Build the upstream access log format."""
    if use_proxy_protocol:
        return LOG_FORMAT_UPSTREAM.format("$proxy_protocol_addr")
    return LOG_FORMAT_UPSTREAM.format("$the_real_ip")

"""
NGINX directive generators for K3s Ingress.

Builds location selectors, rewrite rules and proxy_pass statements for each
routing rule, and assembles them into a preview configuration snippet.
"""

from pathlib import Path
from typing import List, Optional, Sequence

from .policies import (
    build_auth_location,
    build_auth_response_headers,
    build_auth_sign_url,
    build_log_format_upstream,
    build_next_upstream,
    build_rate_limit,
    build_rate_limit_zones,
    filter_rate_limits,
)
from .primitives import (
    build_deny_variable,
    build_forwarded_for,
    build_resolvers,
    is_location_allowed,
    is_valid_client_body_buffer_size,
)
from .types import Backend, IngressConfig, Location, RateLimitConfig, Server

# Matches the opening <head> tag in any letter case
HEAD_TAG_REGEX = r"""(<(?:H|h)(?:E|e)(?:A|a)(?:D|d)(?:[^">]|"[^"]*")*>)"""

INDENT = "    "


def _with_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


def _find_backend(backends: Sequence[Backend], name: str) -> Optional[Backend]:
    for backend in backends:
        if backend.name == name:
            return backend
    return None


def build_location(location: Location) -> str:
    """
    Build the location selector for a routing rule.

    Without a rewrite the path is used as a plain prefix. With a rewrite the
    selector is a case-insensitive regex that captures the rest of the URI
    into $baseuri.

    Args:
        location: Routing rule

    Returns:
        Location selector (e.g. '/api' or '~* ^/api\\/?(?<baseuri>.*)')
    """
    path = location.path
    if not location.has_rewrite:
        return path

    if path == "/":
        return "~* /"

    baseuri = "(?<baseuri>.*)"
    if not path.endswith("/"):
        # The slash after the path is not part of baseuri
        baseuri = f"\\/?{baseuri}"

    return f"~* ^{path}{baseuri}"


def build_rewrites(location: Location) -> List[str]:
    """
    Build the rewrite statements for a routing rule.

    Args:
        location: Routing rule

    Returns:
        List of rewrite statements (empty when the path is not rewritten)
    """
    if not location.has_rewrite:
        return []

    path = location.path
    target = location.rewrite_target
    rewrites = [
        f"rewrite {_with_trailing_slash(path)}(.*) {target.rstrip('/')}/$1 break;"
    ]

    # Redirect to / also needs the bare path, e.g. /something -> /
    if target == "/" and not path.endswith("/"):
        rewrites.append(f"rewrite {path} / break;")

    return rewrites


def build_upstream_name(
    host: str,
    backends: Sequence[Backend],
    location: Location,
) -> str:
    """
    Resolve the upstream a location proxies to.

    Args:
        host: Server hostname of the request
        backends: Known backends
        location: Routing rule

    Returns:
        Backend name, prefixed with 'sticky-' when the backend pins
        (host, path) with cookie affinity
    """
    upstream_name = location.backend_name
    backend = _find_backend(backends, location.backend_name)
    if backend and backend.is_sticky(host, location.path):
        upstream_name = f"sticky-{upstream_name}"
    return upstream_name


def build_proxy_pass(
    host: str,
    backends: Sequence[Backend],
    location: Location,
) -> List[str]:
    """
    Build the proxy statements of a location.

    Order is fixed: rewrites, X-Forwarded-Prefix header, proxy_pass, then the
    <base> tag injection.

    Args:
        host: Server hostname of the request
        backends: Known backends
        location: Routing rule

    Returns:
        List of statements
    """
    backend = _find_backend(backends, location.backend_name)
    proto = "https" if backend and backend.secure else "http"
    upstream_name = build_upstream_name(host, backends, location)
    proxy_pass = f"proxy_pass {proto}://{upstream_name};"

    if not location.has_rewrite:
        return [proxy_pass]

    path = _with_trailing_slash(location.path)
    statements = build_rewrites(location)

    if location.x_forwarded_prefix:
        statements.append(f'proxy_set_header X-Forwarded-Prefix "{path}";')

    statements.append(proxy_pass)

    if location.add_base_url:
        scheme = location.base_url_scheme or "$scheme"
        statements.append(
            f"subs_filter '{HEAD_TAG_REGEX}' "
            f"'$1<base href=\"{scheme}://$http_host{path}$baseuri\">' ro;"
        )

    return statements


def _indent(lines: Sequence[str], level: int = 1) -> List[str]:
    prefix = INDENT * level
    return [f"{prefix}{line}" if line else line for line in lines]


def _deny_key(server: Server, location: Location) -> str:
    return f"{server.hostname}_{build_location(location)}"


def generate_whitelist_geo(server: Server, location: Location) -> List[str]:
    """
    Generate the geo block flagging clients outside a location whitelist.

    Returns:
        Block lines, or an empty list when the location has no whitelist
    """
    if not location.whitelist or not is_location_allowed(location):
        return []

    lines = [f"geo $the_real_ip {build_deny_variable(_deny_key(server, location))} {{"]
    lines.extend(_indent(["default 1;"] + [f"{cidr} 0;" for cidr in location.whitelist]))
    lines.append("}")
    return lines


def generate_rate_limit_keys(rate_limit: RateLimitConfig) -> List[str]:
    """
    Generate the $limit_<id> zone key of a rate limit policy.

    Whitelisted clients map to an empty key, which NGINX does not count
    against any zone.

    Returns:
        geo and map block lines
    """
    whitelist_var = f"$whitelist_{rate_limit.id}"
    lines = [f"geo $the_real_ip {whitelist_var} {{"]
    lines.extend(_indent(["default 0;"] + [f"{cidr} 1;" for cidr in rate_limit.whitelist]))
    lines.append("}")
    lines.append(f"map {whitelist_var} $limit_{rate_limit.id} {{")
    lines.extend(_indent(["0 $binary_remote_addr;", '1 "";']))
    lines.append("}")
    return lines


def generate_auth_location_block(location: Location) -> List[str]:
    """
    Generate the internal location serving the auth sub-request.

    Returns:
        Block lines, or an empty list without external auth
    """
    auth_location = build_auth_location(location)
    if not auth_location:
        return []

    auth = location.external_auth
    body = [
        "internal;",
        "proxy_pass_request_body off;",
        'proxy_set_header Content-Length "";',
    ]
    if auth.method:
        body.append(f"proxy_method {auth.method};")
    body.extend([
        "proxy_set_header X-Original-URI $request_uri;",
        "proxy_set_header X-Scheme $pass_access_scheme;",
        f"proxy_pass {auth.url};",
    ])

    return [f"location = {auth_location} {{"] + _indent(body) + ["}"]


def generate_location_block(
    server: Server,
    location: Location,
    config: IngressConfig,
) -> List[str]:
    """
    Generate a complete location block.

    Args:
        server: Server the location belongs to
        location: Routing rule
        config: Render pass configuration

    Returns:
        Block lines
    """
    body: List[str] = []

    if not is_location_allowed(location):
        body.append(f'# Location denied. Reason: "{location.denied}"')
        body.append("return 503;")
        return [f"location {build_location(location)} {{"] + _indent(body) + ["}"]

    if location.whitelist:
        deny_var = build_deny_variable(_deny_key(server, location))
        body.append(f"if ({deny_var}) {{")
        body.extend(_indent(["return 403;"]))
        body.append("}")

    limits = build_rate_limit(location)
    if not location.rate_limit.id:
        # Zones are keyed by id, only bandwidth limits apply without one
        limits = [limit for limit in limits if limit.startswith("limit_rate")]
    body.extend(limits)

    auth_location = build_auth_location(location)
    if auth_location:
        body.append(f"auth_request {auth_location};")
        body.extend(build_auth_response_headers(location.external_auth.response_headers))
        if location.external_auth.signin_url:
            body.append(
                f"error_page 401 = {build_auth_sign_url(location.external_auth.signin_url)};"
            )

    upstream_name = build_upstream_name(server.hostname, config.backends, location)
    body.append(f'set $proxy_upstream_name "{upstream_name}";')
    body.append(
        "proxy_next_upstream "
        f"{build_next_upstream(config.proxy_next_upstream, config.retry_non_idempotent)};"
    )

    if is_valid_client_body_buffer_size(config.client_body_buffer_size):
        body.append(f"client_body_buffer_size {config.client_body_buffer_size};")

    body.extend(build_proxy_pass(server.hostname, config.backends, location))

    return [f"location {build_location(location)} {{"] + _indent(body) + ["}"]


def generate_server_block(server: Server, config: IngressConfig) -> List[str]:
    """Generate a server block with its locations and auth sub-request locations."""
    body = [f"server_name {server.hostname};"]

    for location in server.locations:
        body.append("")
        body.extend(generate_location_block(server, location, config))

    for location in server.locations:
        auth_block = generate_auth_location_block(location)
        if auth_block:
            body.append("")
            body.extend(auth_block)

    return ["server {"] + _indent(body) + ["}"]


def generate_http_snippet(config: IngressConfig) -> str:
    """
    Generate the http level snippet for a render pass.

    Args:
        config: Complete routing model

    Returns:
        Snippet text
    """
    lines: List[str] = []

    resolver = build_resolvers(config.resolvers)
    if resolver:
        lines.append(resolver)

    lines.append(f"log_format upstreaminfo '{build_log_format_upstream(config.use_proxy_protocol)}';")

    real_ip = "$proxy_protocol_addr" if config.use_proxy_protocol else "$remote_addr"
    # First address of the forwarded-for list is the client
    lines.append(f"map {build_forwarded_for(config.forwarded_for_header)} $the_real_ip {{")
    lines.extend(_indent(['"~^(?P<first>[^,\\s]+)" $first;', f"default {real_ip};"]))
    lines.append("}")

    for rate_limit in filter_rate_limits(config.servers):
        lines.extend(generate_rate_limit_keys(rate_limit))
    lines.extend(build_rate_limit_zones(config.servers))

    for server in config.servers:
        for location in server.locations:
            lines.extend(generate_whitelist_geo(server, location))

    for server in config.servers:
        lines.append("")
        lines.extend(generate_server_block(server, config))

    return "\n".join(lines) + "\n"


def generate_all_snippets(
    config: IngressConfig,
    output_dir: str,
    filename: str = "ingress.conf",
) -> None:
    """
    Generate the NGINX snippet and write it to the output directory.

    Args:
        config: Complete routing model
        output_dir: Output directory
        filename: Snippet file name
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    if not config.servers:
        print("No servers to generate")
        return

    snippet = generate_http_snippet(config)
    locations = sum(len(s.locations) for s in config.servers)
    print(f"Generated {len(config.servers)} servers with {locations} locations")

    (output_path / filename).write_text(snippet)
    print(f"Wrote snippet to {output_path / filename}")

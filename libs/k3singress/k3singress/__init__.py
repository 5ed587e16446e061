"""
K3s Ingress - Compile ingress routing rules into NGINX directives.

This library turns locations, backends and their policies (rewrites, sticky
sessions, external auth, rate limits) into the literal NGINX statements that
route them.
"""

from .types import (
    AffinityType,
    Backend,
    ConnectionZone,
    ExternalAuthConfig,
    IngressConfig,
    Location,
    RateLimitConfig,
    RequestZone,
    Server,
    SessionAffinityConfig,
)
from .primitives import (
    build_deny_variable,
    build_forwarded_for,
    build_resolvers,
    format_ip,
    is_location_allowed,
    is_valid_client_body_buffer_size,
)
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
from .generators import (
    build_location,
    build_proxy_pass,
    build_rewrites,
    build_upstream_name,
    generate_all_snippets,
)
from .schema import load_ingress_yaml, validate_ingress_yaml

__version__ = "0.1.0"
__all__ = [
    # Types
    "AffinityType",
    "Backend",
    "ConnectionZone",
    "ExternalAuthConfig",
    "IngressConfig",
    "Location",
    "RateLimitConfig",
    "RequestZone",
    "Server",
    "SessionAffinityConfig",
    # Primitives
    "build_deny_variable",
    "build_forwarded_for",
    "build_resolvers",
    "format_ip",
    "is_location_allowed",
    "is_valid_client_body_buffer_size",
    # Policies
    "build_auth_location",
    "build_auth_response_headers",
    "build_auth_sign_url",
    "build_log_format_upstream",
    "build_next_upstream",
    "build_rate_limit",
    "build_rate_limit_zones",
    "filter_rate_limits",
    # Generators
    "build_location",
    "build_proxy_pass",
    "build_rewrites",
    "build_upstream_name",
    "generate_all_snippets",
    # Schema
    "load_ingress_yaml",
    "validate_ingress_yaml",
]

"""
Type definitions for K3s Ingress routing model.

These dataclasses represent one render pass worth of routing data: servers,
their locations and the backends those locations point at.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class AffinityType(str, Enum):
    """Session affinity mode of a backend."""
    NONE = ""
    COOKIE = "cookie"


@dataclass
class ExternalAuthConfig:
    """External authentication sub-request for a location."""
    url: str = ""
    method: str = ""
    signin_url: str = ""
    response_headers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["ExternalAuthConfig"]:
        if not data:
            return None
        return cls(
            url=data.get("url", ""),
            method=data.get("method", ""),
            signin_url=data.get("signin_url", ""),
            response_headers=data.get("response_headers", []),
        )


@dataclass
class ConnectionZone:
    """Concurrent connection limit."""
    name: str = ""
    limit: int = 0
    shared_size: int = 5  # MB

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ConnectionZone":
        if not data:
            return cls()
        return cls(
            name=data.get("name", ""),
            limit=data.get("limit", 0),
            shared_size=data.get("shared_size", 5),
        )


@dataclass
class RequestZone:
    """Requests per second/minute limit."""
    name: str = ""
    limit: int = 0
    burst: int = 0
    shared_size: int = 5  # MB

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "RequestZone":
        if not data:
            return cls()
        return cls(
            name=data.get("name", ""),
            limit=data.get("limit", 0),
            burst=data.get("burst", 0),
            shared_size=data.get("shared_size", 5),
        )


@dataclass
class RateLimitConfig:
    """Per-location rate limiting.

    Each sub-policy is active only when its limit is greater than zero.
    ``limit_rate_after`` and ``limit_rate`` are expressed in kilobytes.
    Clients in ``whitelist`` CIDRs get an empty zone key and are not limited.
    """
    id: str = ""
    connections: ConnectionZone = field(default_factory=ConnectionZone)
    rps: RequestZone = field(default_factory=RequestZone)
    rpm: RequestZone = field(default_factory=RequestZone)
    limit_rate_after: int = 0
    limit_rate: int = 0
    whitelist: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "RateLimitConfig":
        if not data:
            return cls()
        return cls(
            id=data.get("id", ""),
            connections=ConnectionZone.from_dict(data.get("connections")),
            rps=RequestZone.from_dict(data.get("rps")),
            rpm=RequestZone.from_dict(data.get("rpm")),
            limit_rate_after=data.get("limit_rate_after", 0),
            limit_rate=data.get("limit_rate", 0),
            whitelist=data.get("whitelist", []),
        )


@dataclass
class Location:
    """A path based routing rule inside a server."""
    path: str
    backend_name: str = ""
    rewrite_target: str = ""
    add_base_url: bool = False
    base_url_scheme: str = ""
    x_forwarded_prefix: bool = False
    external_auth: Optional[ExternalAuthConfig] = None
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    denied: Optional[str] = None
    whitelist: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "Location":
        return cls(
            path=data["path"],
            backend_name=data.get("backend", ""),
            rewrite_target=data.get("rewrite_target", ""),
            add_base_url=data.get("add_base_url", False),
            base_url_scheme=data.get("base_url_scheme", ""),
            x_forwarded_prefix=data.get("x_forwarded_prefix", False),
            external_auth=ExternalAuthConfig.from_dict(data.get("external_auth")),
            rate_limit=RateLimitConfig.from_dict(data.get("rate_limit")),
            denied=data.get("denied"),
            whitelist=data.get("whitelist", []),
        )

    @property
    def has_rewrite(self) -> bool:
        """True when requests are rewritten before being proxied."""
        return bool(self.rewrite_target) and self.rewrite_target != self.path


@dataclass
class SessionAffinityConfig:
    """Session affinity of a backend.

    ``locations`` maps a host to the paths routed with sticky sessions.
    """
    affinity_type: AffinityType = AffinityType.NONE
    cookie_name: str = "INGRESSCOOKIE"
    locations: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "SessionAffinityConfig":
        if not data:
            return cls()
        return cls(
            affinity_type=AffinityType(data.get("type", "")),
            cookie_name=data.get("cookie_name", "INGRESSCOOKIE"),
            locations=data.get("locations", {}),
        )


@dataclass
class Backend:
    """A named upstream pool."""
    name: str
    secure: bool = False
    session_affinity: SessionAffinityConfig = field(default_factory=SessionAffinityConfig)

    @classmethod
    def from_dict(cls, data: Dict) -> "Backend":
        return cls(
            name=data["name"],
            secure=data.get("secure", False),
            session_affinity=SessionAffinityConfig.from_dict(data.get("session_affinity")),
        )

    def is_sticky(self, host: str, path: str) -> bool:
        """Check whether requests for (host, path) use cookie affinity."""
        affinity = self.session_affinity
        if affinity.affinity_type != AffinityType.COOKIE:
            return False
        return path in affinity.locations.get(host, [])


@dataclass
class Server:
    """A virtual host and its locations."""
    hostname: str
    locations: List[Location] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "Server":
        return cls(
            hostname=data["hostname"],
            locations=[Location.from_dict(loc) for loc in data.get("locations", [])],
        )


@dataclass
class IngressConfig:
    """Complete routing model for one render pass."""
    servers: List[Server] = field(default_factory=list)
    backends: List[Backend] = field(default_factory=list)
    resolvers: List[str] = field(default_factory=list)
    proxy_next_upstream: str = "error timeout"
    retry_non_idempotent: bool = False
    client_body_buffer_size: Optional[str] = None
    use_proxy_protocol: bool = False
    forwarded_for_header: str = "X-Forwarded-For"

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "IngressConfig":
        if not data:
            return cls()
        return cls(
            servers=[Server.from_dict(s) for s in data.get("servers", [])],
            backends=[Backend.from_dict(b) for b in data.get("backends", [])],
            resolvers=data.get("resolvers", []),
            proxy_next_upstream=data.get("proxy_next_upstream", "error timeout"),
            retry_non_idempotent=data.get("retry_non_idempotent", False),
            client_body_buffer_size=data.get("client_body_buffer_size"),
            use_proxy_protocol=data.get("use_proxy_protocol", False),
            forwarded_for_header=data.get("forwarded_for_header", "X-Forwarded-For"),
        )

"""Tests for k3singress policy builders."""

import pytest

from k3singress.policies import (
    build_auth_location,
    build_auth_response_headers,
    build_auth_sign_url,
    build_log_format_upstream,
    build_next_upstream,
    build_rate_limit,
    build_rate_limit_zones,
    filter_rate_limits,
)
from k3singress.types import (
    ConnectionZone,
    ExternalAuthConfig,
    Location,
    RateLimitConfig,
    RequestZone,
    Server,
)


@pytest.fixture
def full_rate_limit():
    """Create a rate limit with every sub-policy enabled."""
    return RateLimitConfig(
        id="default-web",
        connections=ConnectionZone(name="con", limit=1),
        rps=RequestZone(name="rps", limit=1, burst=1),
        rpm=RequestZone(name="rpm", limit=2, burst=2),
        limit_rate_after=1,
        limit_rate=1,
    )


def auth_location(path):
    return Location(path=path, external_auth=ExternalAuthConfig(url="foo.com/auth"))


class TestBuildRateLimit:
    def test_all_policies(self, full_rate_limit):
        limits = build_rate_limit(Location(path="/", rate_limit=full_rate_limit))
        assert limits == [
            "limit_conn con 1;",
            "limit_req zone=rps burst=1 nodelay;",
            "limit_req zone=rpm burst=2 nodelay;",
            "limit_rate_after 1k;",
            "limit_rate 1k;",
        ]

    def test_only_limit_rate(self):
        location = Location(path="/", rate_limit=RateLimitConfig(limit_rate=512))
        assert build_rate_limit(location) == ["limit_rate 512k;"]

    def test_no_limits(self):
        assert build_rate_limit(Location(path="/")) == []

    def test_zero_limit_with_name_is_omitted(self):
        rate_limit = RateLimitConfig(rps=RequestZone(name="rps", limit=0, burst=5))
        assert build_rate_limit(Location(path="/", rate_limit=rate_limit)) == []


class TestBuildRateLimitZones:
    def test_zones(self, full_rate_limit):
        server = Server(hostname="example.com", locations=[
            Location(path="/", rate_limit=full_rate_limit),
            Location(path="/other", rate_limit=full_rate_limit),
        ])
        zones = build_rate_limit_zones([server])
        assert zones == [
            "limit_conn_zone $limit_default-web zone=con:5m;",
            "limit_req_zone $limit_default-web zone=rpm:5m rate=2r/m;",
            "limit_req_zone $limit_default-web zone=rps:5m rate=1r/s;",
        ]

    def test_no_zones(self):
        assert build_rate_limit_zones([Server(hostname="a", locations=[Location(path="/")])]) == []

    def test_policy_without_id_is_skipped(self):
        rate_limit = RateLimitConfig(rps=RequestZone(name="rps", limit=5, burst=5))
        server = Server(hostname="a", locations=[Location(path="/", rate_limit=rate_limit)])
        assert build_rate_limit_zones([server]) == []


class TestFilterRateLimits:
    def test_distinct_by_id(self, full_rate_limit):
        other = RateLimitConfig(id="other", limit_rate=1)
        servers = [
            Server(hostname="a", locations=[
                Location(path="/", rate_limit=full_rate_limit),
                Location(path="/x", rate_limit=other),
            ]),
            Server(hostname="b", locations=[
                Location(path="/", rate_limit=full_rate_limit),
                Location(path="/none"),
            ]),
        ]
        assert filter_rate_limits(servers) == [full_rate_limit, other]


class TestBuildNextUpstream:
    # Scenario name -> (conditions, retry non-idempotent, expected)
    CASES = {
        "default": ("timeout http_500 http_502", False, "timeout http_500 http_502"),
        "global": ("timeout http_500 http_502", True, "timeout http_500 http_502 non_idempotent"),
        "local": (
            "timeout http_500 http_502 non_idempotent",
            False,
            "timeout http_500 http_502 non_idempotent",
        ),
        "already present": (
            "timeout http_500 http_502 non_idempotent",
            True,
            "timeout http_500 http_502 non_idempotent",
        ),
    }

    @pytest.mark.parametrize("name", sorted(CASES))
    def test_cases(self, name):
        next_upstream, retry, expected = self.CASES[name]
        assert build_next_upstream(next_upstream, retry) == expected

    def test_idempotent(self):
        once = build_next_upstream("timeout http_500 http_502", True)
        assert build_next_upstream(once, True) == once


class TestBuildAuthLocation:
    def test_encoded_path(self):
        assert build_auth_location(auth_location("/cat")) == "/_external-auth-L2NhdA"

    def test_stable(self):
        assert build_auth_location(auth_location("/cat")) == build_auth_location(auth_location("/cat"))

    def test_distinct_paths(self):
        names = {build_auth_location(auth_location(p)) for p in ["/cat", "/cat/", "/dog", "/"]}
        assert len(names) == 4

    def test_no_padding(self):
        assert "=" not in build_auth_location(auth_location("/a"))

    def test_without_auth(self):
        assert build_auth_location(Location(path="/cat")) == ""
        assert build_auth_location(Location(path="/cat", external_auth=ExternalAuthConfig())) == ""


class TestBuildAuthResponseHeaders:
    def test_headers(self):
        headers = build_auth_response_headers(["h1", "H-With-Caps-And-Dashes"])
        assert headers == [
            "auth_request_set $authHeader0 $upstream_http_h1;",
            "proxy_set_header 'h1' $authHeader0;",
            "auth_request_set $authHeader1 $upstream_http_h_with_caps_and_dashes;",
            "proxy_set_header 'H-With-Caps-And-Dashes' $authHeader1;",
        ]

    def test_no_headers(self):
        assert build_auth_response_headers([]) == []


class TestBuildAuthSignURL:
    @pytest.mark.parametrize("url,expected", [
        ("http://google.com", "http://google.com?rd=$pass_access_scheme://$http_host$request_uri"),
        ("http://google.com?cat=0", "http://google.com?cat=0&rd=$pass_access_scheme://$http_host$request_uri"),
        ("http://google.com?cat&rd=$request", "http://google.com?cat&rd=$request"),
        ("http://google.com?", "http://google.com?rd=$pass_access_scheme://$http_host$request_uri"),
    ])
    def test_sign_url(self, url, expected):
        assert build_auth_sign_url(url) == expected


class TestBuildLogFormatUpstream:
    def test_default(self):
        assert build_log_format_upstream().startswith("$the_real_ip - [$the_real_ip]")

    def test_proxy_protocol(self):
        log_format = build_log_format_upstream(use_proxy_protocol=True)
        assert log_format.startswith("$proxy_protocol_addr - [$the_real_ip]")
        assert log_format.endswith("$upstream_status")

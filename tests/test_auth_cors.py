from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from inkwell.auth.bootstrap import CORS_ALLOW_HEADERS, cors_headers, expand_trusted_origins, origin_allowed

ALLOWED = expand_trusted_origins(["allowed.example", "https://*.trusted.example"])


def test_expand_trusted_origins() -> None:
    assert ALLOWED == ["https://allowed.example", "http://allowed.example", "https://*.trusted.example"]


@pytest.mark.parametrize(
    "origin, allowed, expected",
    [
        ("https://allowed.example", "https://allowed.example", True),
        ("https://allowed.example:8443", "https://allowed.example", False),
        ("https://blog.trusted.example", "https://*.trusted.example", True),
        ("https://a.b.trusted.example", "https://*.trusted.example", True),
        ("https://trusted.example", "https://*.trusted.example", True),
        ("http://blog.trusted.example", "https://*.trusted.example", False),
        ("https://eviltrusted.example", "https://*.trusted.example", False),
        ("https://trusted.example.evil.com", "https://*.trusted.example", False),
    ],
)
def test_origin_allowed(origin: str, allowed: str, expected: bool) -> None:
    assert origin_allowed(origin, allowed) is expected


def test_cors_headers_echo_allowed_origin() -> None:
    h = cors_headers("https://blog.trusted.example", ALLOWED)
    assert h["Access-Control-Allow-Origin"] == "https://blog.trusted.example"
    assert h["Access-Control-Allow-Credentials"] == "true"
    assert h["Access-Control-Max-Age"] == "86400"
    assert "x-session-uuid" in h["Access-Control-Allow-Headers"]


def test_cors_headers_without_origin_use_wildcard() -> None:
    assert cors_headers(None, ALLOWED)["Access-Control-Allow-Origin"] == "*"


def test_cors_headers_omit_origin_for_untrusted() -> None:
    h = cors_headers("https://evil.example", ALLOWED)
    assert "Access-Control-Allow-Origin" not in h
    assert h["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, PATCH, OPTIONS"


def test_preflight_is_answered_without_reaching_the_engine(client) -> None:
    r = client.options(
        "/auth/sign-in/social",
        headers={"Origin": "https://allowed.example", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 204
    assert r.headers["access-control-allow-origin"] == "https://allowed.example"
    assert r.headers["access-control-allow-headers"] == CORS_ALLOW_HEADERS


def test_preflight_on_unknown_auth_path(client) -> None:
    r = client.options("/auth/anything/at/all", headers={"Origin": "https://allowed.example"})
    assert r.status_code == 204


def test_responses_carry_cors_headers(client) -> None:
    r = client.get("/auth/get-session", headers={"Origin": "https://blog.trusted.example"})
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "https://blog.trusted.example"
    assert r.headers["access-control-allow-credentials"] == "true"


def test_untrusted_origin_gets_no_allow_origin(client) -> None:
    r = client.get("/auth/get-session", headers={"Origin": "https://evil.example"})
    assert r.status_code == 200
    assert "access-control-allow-origin" not in r.headers


def test_error_responses_carry_cors_headers(client) -> None:
    r = client.post(
        "/auth/sign-in/social", json={"provider": "nope"}, headers={"Origin": "https://allowed.example"}
    )
    assert r.status_code == 404
    assert r.headers["access-control-allow-origin"] == "https://allowed.example"


def test_error_response_includes_stack_in_development(client) -> None:
    r = client.post("/auth/sign-in/social", json={"provider": "nope"})
    assert "stack" in r.json()


def test_error_response_hides_stack_in_production(app_factory) -> None:
    with TestClient(app_factory(env="production")) as c:
        r = c.post("/api/v2/auth/sign-in/social", json={"provider": "nope"})
    assert r.status_code == 404
    assert "stack" not in r.json()


def test_production_builds_https_redirect_uri(app_factory) -> None:
    with TestClient(app_factory(env="production")) as c:
        r = c.post("/api/v2/auth/sign-in/social", json={"provider": "github"})
    assert r.status_code == 200
    q = parse_qs(urlparse(r.json()["url"]).query)
    assert q["redirect_uri"] == ["https://testserver/api/v2/auth/callback/github"]
    assert "secure" in r.headers["set-cookie"].lower()

from __future__ import annotations

import pytest

from inkwell.settings import load_app_config

_ENV_VARS = (
    "APP_ENV",
    "API_VERSION",
    "ALLOWED_ORIGINS",
    "MONGO_URI",
    "MONGO_CONNECTION_STRING",
    "REDIS_URL",
    "AUTH_SECRET",
    "AUTH_BASE_URL",
    "AUTH_COOKIE_DOMAIN",
    "DEMO_MODE",
    "LOG_LEVEL",
    "OAUTH_GOOGLE_CLIENT_ID",
    "OAUTH_GOOGLE_CLIENT_SECRET",
    "OAUTH_GITHUB_CLIENT_ID",
    "OAUTH_GITHUB_CLIENT_SECRET",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_are_production() -> None:
    cfg = load_app_config()
    assert cfg.env == "production"
    assert cfg.is_dev is False
    assert cfg.api_version == 2
    assert cfg.api_prefix == "/api/v2"
    assert cfg.auth_base_path == "/api/v2/auth"
    assert cfg.allowed_origins == ["localhost"]
    assert cfg.mongo_uri == "mongodb://127.0.0.1:27017/inkwell"
    assert cfg.auth_secret is None
    assert cfg.social_providers == {}
    assert cfg.demo_mode is False
    assert cfg.log_level == "INFO"


def test_development_paths(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "development")
    cfg = load_app_config()
    assert cfg.is_dev is True
    assert cfg.api_prefix == ""
    assert cfg.auth_base_path == "/auth"


def test_api_version_is_parsed(monkeypatch) -> None:
    monkeypatch.setenv("API_VERSION", "3")
    assert load_app_config().auth_base_path == "/api/v3/auth"


def test_invalid_api_version_falls_back(monkeypatch) -> None:
    monkeypatch.setenv("API_VERSION", "three")
    assert load_app_config().api_version == 2


def test_allowed_origins_csv(monkeypatch) -> None:
    monkeypatch.setenv("ALLOWED_ORIGINS", " blog.example , https://*.example.com,,")
    assert load_app_config().allowed_origins == ["blog.example", "https://*.example.com"]


def test_custom_mongo_uri_wins(monkeypatch) -> None:
    monkeypatch.setenv("MONGO_URI", "mongodb://db:27017/inkwell")
    monkeypatch.setenv("MONGO_CONNECTION_STRING", "mongodb+srv://cluster.example/inkwell")
    assert load_app_config().mongo_uri == "mongodb+srv://cluster.example/inkwell"


def test_empty_redis_url_disables_cache(monkeypatch) -> None:
    monkeypatch.setenv("REDIS_URL", "")
    assert load_app_config().redis_url is None


def test_auth_base_url_trailing_slash_is_trimmed(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_BASE_URL", "https://api.example.com/")
    assert load_app_config().auth_base_url == "https://api.example.com"


def test_social_provider_needs_id_and_secret(monkeypatch) -> None:
    monkeypatch.setenv("OAUTH_GITHUB_CLIENT_ID", "gh-id")
    monkeypatch.setenv("OAUTH_GITHUB_CLIENT_SECRET", "gh-secret")
    monkeypatch.setenv("OAUTH_GOOGLE_CLIENT_ID", "only-id")
    providers = load_app_config().social_providers
    assert list(providers) == ["github"]
    assert providers["github"].client_id == "gh-id"


@pytest.mark.parametrize("raw, expected", [("true", True), ("1", True), ("yes", True), ("false", False), ("", False)])
def test_demo_mode_flag(monkeypatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("DEMO_MODE", raw)
    assert load_app_config().demo_mode is expected


def test_config_is_cached(monkeypatch) -> None:
    first = load_app_config()
    monkeypatch.setenv("APP_ENV", "development")
    assert load_app_config() is first
    load_app_config.cache_clear()
    assert load_app_config().is_dev is True

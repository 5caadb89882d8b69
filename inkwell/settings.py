"""
Application settings loaded from environment variables.

Everything environment-dependent (development vs production, origins, database
URIs, social credentials) is resolved here once and handed to components as an
explicit `AppConfig` object.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

SUPPORTED_SOCIAL_PROVIDERS = ("google", "github")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _parse_csv(value: str) -> List[str]:
    items = [x.strip() for x in (value or "").split(",")]
    return [x for x in items if x]


@dataclass(frozen=True)
class SocialProviderCredentials:
    client_id: str
    client_secret: str
    redirect_uri: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    env: str
    api_version: int
    allowed_origins: List[str]

    # Storage
    mongo_default_uri: str
    mongo_custom_uri: Optional[str]
    redis_url: Optional[str]

    # Auth
    auth_secret: Optional[str]
    auth_base_url: Optional[str]
    auth_cookie_domain: Optional[str]
    social_providers: Dict[str, SocialProviderCredentials] = field(default_factory=dict)

    demo_mode: bool = False
    log_level: str = "INFO"

    @property
    def is_dev(self) -> bool:
        return self.env in ("development", "dev")

    @property
    def api_prefix(self) -> str:
        return "" if self.is_dev else f"/api/v{self.api_version}"

    @property
    def auth_base_path(self) -> str:
        return "/auth" if self.is_dev else f"/api/v{self.api_version}/auth"

    @property
    def mongo_uri(self) -> str:
        return self.mongo_custom_uri or self.mongo_default_uri


def _load_social_providers() -> Dict[str, SocialProviderCredentials]:
    providers: Dict[str, SocialProviderCredentials] = {}
    for provider in SUPPORTED_SOCIAL_PROVIDERS:
        prefix = f"OAUTH_{provider.upper()}"
        client_id = (os.getenv(f"{prefix}_CLIENT_ID") or "").strip()
        client_secret = (os.getenv(f"{prefix}_CLIENT_SECRET") or "").strip()
        if client_id and client_secret:
            providers[provider] = SocialProviderCredentials(client_id=client_id, client_secret=client_secret)
    return providers


@lru_cache(maxsize=1)
def load_app_config() -> AppConfig:
    """
    Load application configuration from environment variables.

    A social provider is enabled when both its client id and client secret are set.
    """
    version_raw = (os.getenv("API_VERSION") or "").strip() or "2"
    try:
        api_version = int(version_raw)
    except ValueError:
        api_version = 2

    return AppConfig(
        env=(os.getenv("APP_ENV") or "").strip().lower() or "production",
        api_version=api_version,
        allowed_origins=_parse_csv(os.getenv("ALLOWED_ORIGINS", "localhost")),
        mongo_default_uri=(os.getenv("MONGO_URI") or "").strip() or "mongodb://127.0.0.1:27017/inkwell",
        mongo_custom_uri=(os.getenv("MONGO_CONNECTION_STRING") or "").strip() or None,
        redis_url=(os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0") or "").strip() or None,
        auth_secret=(os.getenv("AUTH_SECRET") or "").strip() or None,
        auth_base_url=(os.getenv("AUTH_BASE_URL") or "").strip().rstrip("/") or None,
        auth_cookie_domain=(os.getenv("AUTH_COOKIE_DOMAIN") or "").strip() or None,
        social_providers=_load_social_providers(),
        demo_mode=_env_bool("DEMO_MODE", False),
        log_level=(os.getenv("LOG_LEVEL") or "info").strip().upper(),
    )

"""
Pytest config.

Local imports like `import inkwell` rely on the repo root being on sys.path; pin
that here so a global `pytest` entrypoint works without an editable install.

Cache and database fixtures come from `inkwell.testing`: in-memory doubles
locally, the services provided by CI when `CI` is set.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Iterator

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from fastapi.testclient import TestClient  # noqa: E402

from inkwell.api.app import create_app  # noqa: E402
from inkwell.api.deps import require_owner  # noqa: E402
from inkwell.db import Resources  # noqa: E402
from inkwell.settings import AppConfig, SocialProviderCredentials, load_app_config  # noqa: E402
from inkwell.testing import MockCache, MockDatabase, create_mock_cache, create_mock_db  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"


def make_config(**overrides: Any) -> AppConfig:
    values: Dict[str, Any] = {
        "env": "development",
        "api_version": 2,
        "allowed_origins": ["allowed.example", "https://*.trusted.example"],
        "mongo_default_uri": "mongodb://127.0.0.1:27017/inkwell",
        "mongo_custom_uri": None,
        "redis_url": None,
        "auth_secret": TEST_SECRET,
        "auth_base_url": None,
        "auth_cookie_domain": None,
        "social_providers": {"github": SocialProviderCredentials(client_id="gh-id", client_secret="gh-secret")},
        "demo_mode": False,
    }
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture(autouse=True)
def _clear_config_cache() -> Iterator[None]:
    load_app_config.cache_clear()
    yield
    load_app_config.cache_clear()


@pytest.fixture
def mock_cache() -> Iterator[MockCache]:
    cache = create_mock_cache()
    yield cache
    cache.close()


@pytest.fixture
def mock_db() -> Iterator[MockDatabase]:
    db = create_mock_db()
    yield db
    db.close()


@pytest.fixture
def resources(mock_db: MockDatabase, mock_cache: MockCache) -> Resources:
    return Resources(mongo_client=mock_db.client, db=mock_db.db, cache=mock_cache.client)


@pytest.fixture
def app_config() -> AppConfig:
    return make_config()


@pytest.fixture
def app(app_config: AppConfig, resources: Resources):
    return create_app(app_config, resources)


@pytest.fixture
def app_factory(resources: Resources):
    """Build an app over the shared test resources with config overrides, e.g. `app_factory(env="production")`."""

    def _build(**overrides: Any):
        return create_app(make_config(**overrides), resources)

    return _build


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def owner_client(app) -> Iterator[TestClient]:
    app.dependency_overrides[require_owner] = lambda: {"session": {}, "user": {"is_owner": True}}
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def github_login(monkeypatch):
    """
    Run the GitHub sign-in flow against `client` with the provider's network
    calls stubbed out. Returns the callback response (a redirect).
    """
    from urllib.parse import parse_qs, urlparse

    from inkwell.auth.providers import GitHubProvider, ProviderProfile

    def _login(
        client: TestClient,
        *,
        account_id: str = "1001",
        email: str = "octo@example.com",
        verified: bool = True,
        callback_url: str = "/dashboard",
        base_path: str = "/auth",
    ):
        monkeypatch.setattr(
            GitHubProvider,
            "exchange_code",
            lambda self, **kwargs: {"access_token": "gho_test", "scope": "read:user,user:email", "expires_in": 3600},
        )
        monkeypatch.setattr(
            GitHubProvider,
            "get_profile",
            lambda self, tokens: ProviderProfile(id=account_id, email=email, name="Octo", email_verified=verified),
        )
        r = client.post(f"{base_path}/sign-in/social", json={"provider": "github", "callbackURL": callback_url})
        assert r.status_code == 200, r.text
        state = parse_qs(urlparse(r.json()["url"]).query)["state"][0]
        return client.get(
            f"{base_path}/callback/github", params={"code": "code-123", "state": state}, follow_redirects=False
        )

    return _login

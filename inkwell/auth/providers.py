"""
Social login providers (OAuth2 authorization-code flow with PKCE).

Google is handled as an OIDC provider: its ID token is verified against the
provider's published signing keys. GitHub has no ID token; the profile and the
primary verified email come from its REST API.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Type
from urllib.parse import urlencode

import jwt  # PyJWT
import requests

from inkwell.auth.util import pkce_challenge
from inkwell.settings import SocialProviderCredentials

_discovery_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}
_jwks_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}

_CACHE_TTL_SECONDS = 3600
_HTTP_TIMEOUT = 10


def _get_json_cached(cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]], url: str) -> Dict[str, Any]:
    ts, cached = cache.get(url, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < _CACHE_TTL_SECONDS:
        return cached
    r = requests.get(url, timeout=_HTTP_TIMEOUT)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError(f"Invalid JSON document at {url}")
    cache[url] = (now, data)
    return data


@dataclass(frozen=True)
class ProviderProfile:
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    email_verified: bool = False


class SocialProvider:
    id: str = ""
    scope: str = ""

    def __init__(self, credentials: SocialProviderCredentials) -> None:
        self.credentials = credentials

    def authorize_endpoint(self) -> str:
        raise NotImplementedError

    def authorization_url(self, *, redirect_uri: str, state: str, code_verifier: str) -> str:
        params = {
            "client_id": self.credentials.client_id,
            "redirect_uri": self.credentials.redirect_uri or redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
            "code_challenge": pkce_challenge(code_verifier),
            "code_challenge_method": "S256",
        }
        return f"{self.authorize_endpoint()}?{urlencode(params)}"

    def exchange_code(self, *, code: str, redirect_uri: str, code_verifier: str) -> Dict[str, Any]:
        raise NotImplementedError

    def get_profile(self, tokens: Mapping[str, Any]) -> ProviderProfile:
        raise NotImplementedError

    def _post_token(self, token_endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        r = requests.post(token_endpoint, data=payload, headers={"Accept": "application/json"}, timeout=_HTTP_TIMEOUT)
        if r.status_code >= 400:
            # Avoid leaking sensitive info; include minimal context.
            raise ValueError(f"Token exchange failed (provider={self.id} status={r.status_code})")
        data = r.json()
        if not isinstance(data, dict) or data.get("error"):
            raise ValueError(f"Invalid token response (provider={self.id})")
        return data


class GoogleProvider(SocialProvider):
    id = "google"
    scope = "openid email profile"
    discovery_url = "https://accounts.google.com/.well-known/openid-configuration"

    def _discovery(self) -> Dict[str, Any]:
        return _get_json_cached(_discovery_cache, self.discovery_url)

    def authorize_endpoint(self) -> str:
        endpoint = str(self._discovery().get("authorization_endpoint") or "")
        if not endpoint:
            raise ValueError("OIDC discovery missing authorization_endpoint")
        return endpoint

    def exchange_code(self, *, code: str, redirect_uri: str, code_verifier: str) -> Dict[str, Any]:
        token_endpoint = str(self._discovery().get("token_endpoint") or "")
        if not token_endpoint:
            raise ValueError("OIDC discovery missing token_endpoint")
        return self._post_token(
            token_endpoint,
            {
                "client_id": self.credentials.client_id,
                "client_secret": self.credentials.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.credentials.redirect_uri or redirect_uri,
                "code_verifier": code_verifier,
            },
        )

    def validate_id_token(self, id_token: str) -> Dict[str, Any]:
        disc = self._discovery()
        issuer = str(disc.get("issuer") or "")
        jwks_uri = str(disc.get("jwks_uri") or "")
        if not issuer or not jwks_uri:
            raise ValueError("OIDC discovery missing issuer/jwks_uri")

        kid = str(jwt.get_unverified_header(id_token).get("kid") or "")
        if not kid:
            raise ValueError("ID token missing kid")

        keys = _get_json_cached(_jwks_cache, jwks_uri).get("keys")
        if not isinstance(keys, list):
            raise ValueError("Invalid JWKS keys")
        jwk = next((k for k in keys if isinstance(k, dict) and str(k.get("kid") or "") == kid), None)
        if jwk is None:
            raise ValueError("Unknown signing key (kid)")

        key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        claims = jwt.decode(
            id_token,
            key=key,
            algorithms=["RS256"],
            audience=self.credentials.client_id,
            issuer=issuer,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
        if not isinstance(claims, dict):
            raise ValueError("Invalid ID token claims")
        return claims

    def get_profile(self, tokens: Mapping[str, Any]) -> ProviderProfile:
        id_token = str(tokens.get("id_token") or "").strip()
        if not id_token:
            raise ValueError("Missing id_token in token response")
        claims = self.validate_id_token(id_token)
        email = str(claims.get("email") or "").strip().lower()
        if "@" not in email:
            raise ValueError("Missing email claim")
        return ProviderProfile(
            id=str(claims["sub"]),
            email=email,
            name=str(claims.get("name") or "").strip() or None,
            image=str(claims.get("picture") or "").strip() or None,
            email_verified=claims.get("email_verified") is True,
        )


class GitHubProvider(SocialProvider):
    id = "github"
    scope = "read:user user:email"
    api_base = "https://api.github.com"

    def authorize_endpoint(self) -> str:
        return "https://github.com/login/oauth/authorize"

    def exchange_code(self, *, code: str, redirect_uri: str, code_verifier: str) -> Dict[str, Any]:
        return self._post_token(
            "https://github.com/login/oauth/access_token",
            {
                "client_id": self.credentials.client_id,
                "client_secret": self.credentials.client_secret,
                "code": code,
                "redirect_uri": self.credentials.redirect_uri or redirect_uri,
                "code_verifier": code_verifier,
            },
        )

    def _api_get(self, path: str, access_token: str) -> Any:
        r = requests.get(
            f"{self.api_base}{path}",
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/vnd.github+json"},
            timeout=_HTTP_TIMEOUT,
        )
        r.raise_for_status()
        return r.json()

    def get_profile(self, tokens: Mapping[str, Any]) -> ProviderProfile:
        access_token = str(tokens.get("access_token") or "").strip()
        if not access_token:
            raise ValueError("Missing access_token in token response")
        user = self._api_get("/user", access_token)
        if not isinstance(user, dict) or user.get("id") is None:
            raise ValueError("Invalid GitHub user response")

        email = str(user.get("email") or "").strip().lower()
        verified = False
        emails = self._api_get("/user/emails", access_token)
        if isinstance(emails, list):
            primary = next((e for e in emails if isinstance(e, dict) and e.get("primary")), None)
            if primary:
                email = str(primary.get("email") or email).strip().lower()
                verified = primary.get("verified") is True
        if "@" not in email:
            raise ValueError("GitHub account has no usable email")

        return ProviderProfile(
            id=str(user["id"]),
            email=email,
            name=str(user.get("name") or user.get("login") or "").strip() or None,
            image=str(user.get("avatar_url") or "").strip() or None,
            email_verified=verified,
        )


PROVIDER_CLASSES: Dict[str, Type[SocialProvider]] = {
    GoogleProvider.id: GoogleProvider,
    GitHubProvider.id: GitHubProvider,
}


def build_providers(credentials: Mapping[str, SocialProviderCredentials]) -> Dict[str, SocialProvider]:
    providers: Dict[str, SocialProvider] = {}
    for provider_id, creds in credentials.items():
        cls = PROVIDER_CLASSES.get(provider_id)
        if cls is None:
            raise ValueError(f"Unsupported social provider: {provider_id}")
        providers[provider_id] = cls(creds)
    return providers

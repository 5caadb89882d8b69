"""
Auth bootstrap: builds the auth engine for this application and wraps it in a
raw ASGI handler with CORS, preflight handling, request logging and JSON error
responses.
"""
from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from pymongo.database import Database
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from inkwell.auth.constants import (
    AUTH_ACCOUNT_COLLECTION,
    AUTH_SESSION_COLLECTION,
    AUTH_USER_COLLECTION,
    COOKIE_PREFIX,
    SESSION_EXPIRES_IN_SECONDS,
    SESSION_UPDATE_AGE_SECONDS,
    TRUSTED_PROVIDERS,
)
from inkwell.auth.engine import AuthEngine, AuthEngineOptions
from inkwell.auth.errors import APIError
from inkwell.auth.hooks import AfterHook, AuthPlugin, HookContext
from inkwell.auth.session import CookieAttributes, session_cookie_name, token_from_set_cookie
from inkwell.settings import AppConfig, SocialProviderCredentials

logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With, Accept, Origin, x-session-uuid"
CORS_MAX_AGE = "86400"


def expand_trusted_origins(origins: List[str]) -> List[str]:
    """Full origins are kept; a bare host becomes both its https and http origin."""
    out: List[str] = []
    for origin in origins:
        if origin.startswith("http"):
            out.append(origin)
        else:
            out.extend([f"https://{origin}", f"http://{origin}"])
    return out


def origin_allowed(origin: str, allowed: str) -> bool:
    """
    Exact match, or a `*.` wildcard entry such as `https://*.example.com`, which
    matches the bare domain and any subdomain of it over the same scheme.
    """
    if allowed == origin:
        return True
    if "*." not in allowed:
        return False
    allowed_parts = urlparse(allowed.replace("*.", "", 1))
    origin_parts = urlparse(origin)
    base = (allowed_parts.hostname or "").lower()
    host = (origin_parts.hostname or "").lower()
    if not base or not host or allowed_parts.scheme != origin_parts.scheme:
        return False
    if allowed_parts.port != origin_parts.port:
        return False
    return host == base or host.endswith("." + base)


def cors_headers(origin: Optional[str], allowed_origins: List[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if origin and any(origin_allowed(origin, allowed) for allowed in allowed_origins):
        headers["Access-Control-Allow-Origin"] = origin
    elif not origin:
        headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
    headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
    headers["Access-Control-Allow-Credentials"] = "true"
    headers["Access-Control-Max-Age"] = CORS_MAX_AGE
    headers["Vary"] = "Origin"
    return headers


def provider_from_context(ctx: HookContext) -> Optional[str]:
    provider = ctx.params.get("id")
    if provider:
        return str(provider)
    if ctx.request is None:
        return None
    pathname = ctx.request.url.path
    if "/callback/" not in pathname:
        return None
    return pathname.split("/callback/", 1)[1].split("/")[0] or None


def session_provider_plugin(db: Database, *, session_collection: str, cookie_prefix: str) -> AuthPlugin:
    """
    After an OAuth callback, record which provider was used on the new session,
    so downstream lookups don't need to join through the accounts collection.
    """

    def _record_provider(ctx: HookContext) -> None:
        provider = provider_from_context(ctx)
        if not provider:
            return
        if ctx.new_session is not None:
            token = ctx.new_session.token
        else:
            token = token_from_set_cookie(
                ctx.returned.headers.getlist("set-cookie"), cookie_name=session_cookie_name(cookie_prefix)
            )
        if not token:
            logger.debug("No session issued by %s; provider not recorded", ctx.path)
            return
        db[session_collection].update_one({"token": token}, {"$set": {"provider": provider}})

    return AuthPlugin(
        id="add-account-to-session",
        after_hooks=[AfterHook(matcher=lambda ctx: ctx.path.startswith("/callback"), handler=_record_provider)],
    )


class AuthHandler:
    """ASGI app mounted at the auth base path."""

    def __init__(self, engine: AuthEngine, *, allowed_origins: List[str], is_dev: bool) -> None:
        self.engine = engine
        self.allowed_origins = allowed_origins
        self.is_dev = is_dev

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.engine(scope, receive, send)
            return

        request = Request(scope, receive)
        method = request.method
        path = request.url.path
        logger.info("[auth] %s %s", method, path)
        logger.debug(
            "[auth] headers: %s",
            {
                "origin": request.headers.get("origin"),
                "cookie": "present" if request.headers.get("cookie") else "none",
                "content-type": request.headers.get("content-type"),
            },
        )

        cors = cors_headers(request.headers.get("origin"), self.allowed_origins)

        if method == "OPTIONS":
            await Response(status_code=204, headers=cors)(scope, receive, send)
            return

        started = False

        async def send_with_cors(message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
                headers = MutableHeaders(scope=message)
                for k, v in cors.items():
                    headers[k] = v
            await send(message)

        # Behind a TLS-terminating proxy the socket is plain; the engine builds
        # redirect URIs and cookie flags from the scheme.
        forwarded = dict(scope, scheme="http" if self.is_dev else "https")
        try:
            await self.engine(forwarded, receive, send_with_cors)
        except Exception as e:
            logger.exception("[auth] %s %s failed; headers=%s", method, path, dict(request.headers))
            if started:
                raise
            status = getattr(e, "status_code", None) or 500
            content: Dict[str, Any] = {
                "error": "Authentication handler error",
                "message": (e.message if isinstance(e, APIError) else str(e)) or "Unknown error",
                "path": path,
                "method": method,
            }
            if self.is_dev:
                content["stack"] = traceback.format_exc()
            await JSONResponse(status_code=status, content=content, headers=cors)(scope, receive, send)


class AuthQueryAPI:
    def __init__(self, engine: AuthEngine) -> None:
        self._engine = engine

    def get_session(self, headers: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        return self._engine.api.get_session(headers)

    def get_providers(self) -> List[str]:
        return list(self._engine.options.social_providers or {})

    def list_user_accounts(self, headers: Mapping[str, str]) -> Optional[List[Dict[str, Any]]]:
        try:
            return self._engine.api.list_user_accounts(headers)
        except APIError:
            return None


@dataclass
class AuthFacade:
    options: AuthEngineOptions
    api: AuthQueryAPI


@dataclass
class AuthInstance:
    handler: AuthHandler
    auth: AuthFacade


def create_auth(
    db: Database,
    providers: Mapping[str, SocialProviderCredentials],
    cfg: AppConfig,
    *,
    secret: Optional[str] = None,
) -> AuthInstance:
    """
    Build the auth engine bound to `db` and the given social providers.

    Development mode serves the engine at `/auth` over plain http; production
    serves it at `/api/v{N}/auth` and treats requests as https.
    """
    secret = secret or cfg.auth_secret
    if not secret:
        raise ValueError("AUTH_SECRET is required")

    trusted_origins = expand_trusted_origins(cfg.allowed_origins)
    cookie_attributes = None
    if cfg.auth_cookie_domain:
        cookie_attributes = CookieAttributes(
            domain=cfg.auth_cookie_domain,
            secure=not cfg.is_dev,
            same_site="lax",
            http_only=True,
        )

    options = AuthEngineOptions(
        database=db,
        secret=secret,
        base_path=cfg.auth_base_path,
        social_providers=dict(providers),
        base_url=cfg.auth_base_url,
        trusted_origins=trusted_origins,
        app_name="inkwell",
        cookie_prefix=COOKIE_PREFIX,
        cookie_attributes=cookie_attributes,
        session_expires_in=SESSION_EXPIRES_IN_SECONDS,
        session_update_age=SESSION_UPDATE_AGE_SECONDS,
        user_collection=AUTH_USER_COLLECTION,
        account_collection=AUTH_ACCOUNT_COLLECTION,
        session_collection=AUTH_SESSION_COLLECTION,
        account_linking=True,
        trusted_providers=TRUSTED_PROVIDERS,
        plugins=[
            session_provider_plugin(db, session_collection=AUTH_SESSION_COLLECTION, cookie_prefix=COOKIE_PREFIX),
        ],
    )
    engine = AuthEngine(options)
    logger.info(
        "Auth engine ready: base_path=%s providers=%s trusted_origins=%d",
        options.base_path,
        sorted(options.social_providers),
        len(trusted_origins),
    )
    return AuthInstance(
        handler=AuthHandler(engine, allowed_origins=trusted_origins, is_dev=cfg.is_dev),
        auth=AuthFacade(options=options, api=AuthQueryAPI(engine)),
    )

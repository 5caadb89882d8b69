"""
Social-login auth engine.

Serves the auth routes as a Starlette router meant to be mounted under the auth
base path, persists users/accounts/sessions in MongoDB and issues signed session
cookies (`<token>.<signature>`). Expected failures are raised as `APIError`;
the caller (see `inkwell.auth.bootstrap`) turns them into JSON responses.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

import jwt
import requests
from pymongo.database import Database
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request, cookie_parser
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route, Router

from inkwell.auth.adapter import MongoAdapter, new_id
from inkwell.auth.constants import (
    AUTH_ACCOUNT_COLLECTION,
    AUTH_SESSION_COLLECTION,
    AUTH_USER_COLLECTION,
    COOKIE_PREFIX,
    OAUTH_STATE_TTL_SECONDS,
    SESSION_EXPIRES_IN_SECONDS,
    SESSION_UPDATE_AGE_SECONDS,
    TRUSTED_PROVIDERS,
)
from inkwell.auth.errors import APIError
from inkwell.auth.hooks import AuthPlugin, HookContext, matching_hooks, run_after_hooks
from inkwell.auth.models import Account, Session, User, utcnow
from inkwell.auth.providers import ProviderProfile, build_providers
from inkwell.auth.session import (
    CookieAttributes,
    clear_cookie_kwargs,
    cookie_kwargs,
    decode_state,
    encode_state,
    session_cookie_name,
    sign_token,
    state_cookie_name,
    unsign_token,
)
from inkwell.auth.util import random_token, sanitize_callback_url
from inkwell.settings import SocialProviderCredentials

logger = logging.getLogger(__name__)


@dataclass
class AuthEngineOptions:
    database: Database
    secret: str
    base_path: str
    social_providers: Dict[str, SocialProviderCredentials] = field(default_factory=dict)
    base_url: Optional[str] = None
    trusted_origins: List[str] = field(default_factory=list)
    app_name: str = "inkwell"
    cookie_prefix: str = COOKIE_PREFIX
    cookie_attributes: Optional[CookieAttributes] = None
    session_expires_in: int = SESSION_EXPIRES_IN_SECONDS
    session_update_age: int = SESSION_UPDATE_AGE_SECONDS
    user_collection: str = AUTH_USER_COLLECTION
    account_collection: str = AUTH_ACCOUNT_COLLECTION
    session_collection: str = AUTH_SESSION_COLLECTION
    account_linking: bool = True
    trusted_providers: Tuple[str, ...] = TRUSTED_PROVIDERS
    plugins: List[AuthPlugin] = field(default_factory=list)


@dataclass
class SessionResult:
    session: Session
    user: User
    refreshed: bool = False

    def to_public(self) -> Dict[str, Any]:
        return {"session": self.session.to_public(), "user": self.user.to_public()}


def _cookie_header(headers: Mapping[str, str]) -> str:
    return headers.get("cookie") or headers.get("Cookie") or ""


class AuthAPI:
    """Server-side calls that take the caller's request headers instead of a request."""

    def __init__(self, engine: "AuthEngine") -> None:
        self._engine = engine

    def get_session(self, headers: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        result = self._engine.current_session(headers)
        return result.to_public() if result else None

    def list_user_accounts(self, headers: Mapping[str, str]) -> List[Dict[str, Any]]:
        result = self._engine.current_session(headers)
        if result is None:
            raise APIError(401, "Unauthorized", code="UNAUTHORIZED")
        return [a.to_public() for a in self._engine.adapter.list_accounts(result.user.id)]

    def sign_out(self, headers: Mapping[str, str]) -> bool:
        token = self._engine.session_token(headers)
        if not token:
            return False
        self._engine.adapter.delete_session(token)
        return True


class AuthEngine:
    def __init__(self, options: AuthEngineOptions) -> None:
        if not options.secret:
            raise ValueError("An auth secret is required to sign session cookies")
        self.options = options
        self.adapter = MongoAdapter(
            options.database,
            user_collection=options.user_collection,
            account_collection=options.account_collection,
            session_collection=options.session_collection,
        )
        self.providers = build_providers(options.social_providers)
        self.api = AuthAPI(self)
        self.router = Router(
            routes=[
                Route("/sign-in/social", self._sign_in_social, methods=["POST"]),
                Route("/callback/{id}", self._callback, methods=["GET"]),
                Route("/get-session", self._get_session, methods=["GET"]),
                Route("/sign-out", self._sign_out, methods=["POST"]),
                Route("/list-accounts", self._list_accounts, methods=["GET"]),
                Route("/ok", self._ok, methods=["GET"]),
            ]
        )

    async def __call__(self, scope, receive, send) -> None:
        await self.router(scope, receive, send)

    @property
    def session_cookie(self) -> str:
        return session_cookie_name(self.options.cookie_prefix)

    @property
    def state_cookie(self) -> str:
        return state_cookie_name(self.options.cookie_prefix)

    # Sessions

    def session_token(self, headers: Mapping[str, str]) -> Optional[str]:
        cookies = cookie_parser(_cookie_header(headers))
        return unsign_token(self.options.secret, cookies.get(self.session_cookie))

    def current_session(self, headers: Mapping[str, str]) -> Optional[SessionResult]:
        token = self.session_token(headers)
        if not token:
            return None
        session = self.adapter.find_session(token)
        if session is None:
            return None
        now = utcnow()
        if session.expires_at <= now:
            self.adapter.delete_session(token)
            return None
        user = self.adapter.find_user_by_id(session.user_id)
        if user is None:
            return None

        # Sliding refresh: once `update_age` has passed since the expiry was last
        # set, push the expiry out to a full `expires_in` again.
        expires_in = timedelta(seconds=self.options.session_expires_in)
        update_age = timedelta(seconds=self.options.session_update_age)
        refreshed = False
        if session.expires_at - expires_in + update_age <= now:
            session.expires_at = now + expires_in
            self.adapter.update_session(token, {"expires_at": session.expires_at})
            refreshed = True
        return SessionResult(session=session, user=user, refreshed=refreshed)

    def _create_session(self, request: Request, user: User) -> Session:
        return self.adapter.create_session(
            token=random_token(32),
            user_id=user.id,
            expires_at=utcnow() + timedelta(seconds=self.options.session_expires_in),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

    def _session_cookie_kwargs(self, request: Request, token: str) -> Dict[str, Any]:
        return cookie_kwargs(
            self.options.cookie_attributes,
            key=self.session_cookie,
            value=sign_token(self.options.secret, token),
            max_age=self.options.session_expires_in,
            secure_default=self._secure(request),
        )

    # Users and accounts

    def _link_user(self, provider_id: str, profile: ProviderProfile, tokens: Mapping[str, Any]) -> User:
        token_fields = self._token_fields(tokens)
        account = self.adapter.find_account(provider_id, profile.id)
        if account is not None:
            self.adapter.update_account_tokens(account.id, token_fields)
            user = self.adapter.find_user_by_id(account.user_id)
            if user is None:
                raise APIError(500, "Account is not attached to a user", code="USER_NOT_FOUND")
            return user

        user = self.adapter.find_user_by_email(profile.email)
        if user is None:
            user = self.adapter.create_user(
                email=profile.email,
                name=profile.name,
                image=profile.image,
                email_verified=profile.email_verified,
            )
            logger.info("Created user %s via %s", user.id, provider_id)
        else:
            trusted = provider_id in self.options.trusted_providers or profile.email_verified
            if not (self.options.account_linking and trusted):
                raise APIError(401, "Account not linked", code="ACCOUNT_NOT_LINKED")
            logger.info("Linking %s account to existing user %s", provider_id, user.id)

        self.adapter.create_account(
            Account(id=new_id(), user_id=user.id, provider_id=provider_id, account_id=profile.id, **token_fields)
        )
        return user

    @staticmethod
    def _token_fields(tokens: Mapping[str, Any]) -> Dict[str, Any]:
        expires_at = None
        try:
            expires_in = int(tokens.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        if expires_in > 0:
            expires_at = utcnow() + timedelta(seconds=expires_in)
        return {
            "access_token": tokens.get("access_token"),
            "refresh_token": tokens.get("refresh_token"),
            "id_token": tokens.get("id_token"),
            "scope": tokens.get("scope"),
            "access_token_expires_at": expires_at,
        }

    # Routing helpers

    @staticmethod
    def _secure(request: Request) -> bool:
        return request.url.scheme == "https"

    def _route_path(self, request: Request) -> str:
        path = request.scope.get("path", "")
        root = request.scope.get("root_path", "")
        if root and path.startswith(root):
            return path[len(root):] or "/"
        return path

    def _callback_uri(self, request: Request, provider_id: str) -> str:
        base = self.options.base_url or f"{request.url.scheme}://{request.url.netloc}"
        return f"{base.rstrip('/')}{self.options.base_path}/callback/{provider_id}"

    def _finish(self, request: Request, response: Response, *, new_session: Optional[Session] = None) -> Response:
        ctx = HookContext(
            path=self._route_path(request),
            params=dict(request.path_params),
            request=request,
            returned=response,
            new_session=new_session,
        )
        hooks = matching_hooks(self.options.plugins, ctx)
        if hooks:
            response.background = BackgroundTask(run_after_hooks, hooks, ctx)
        return response

    # Endpoints

    async def _sign_in_social(self, request: Request) -> Response:
        try:
            body = await request.json()
        except ValueError:
            raise APIError(400, "Request body must be JSON", code="INVALID_BODY")
        if not isinstance(body, dict):
            raise APIError(400, "Request body must be an object", code="INVALID_BODY")

        provider_id = str(body.get("provider") or "").strip()
        provider = self.providers.get(provider_id)
        if provider is None:
            raise APIError(404, f"Provider not found: {provider_id or '<empty>'}", code="PROVIDER_NOT_FOUND")

        state = random_token(32)
        verifier = random_token(32)  # 43 chars base64url -> valid PKCE verifier
        callback_url = sanitize_callback_url(body.get("callbackURL"), self.options.trusted_origins)
        url = await run_in_threadpool(
            provider.authorization_url,
            redirect_uri=self._callback_uri(request, provider_id),
            state=state,
            code_verifier=verifier,
        )

        resp = JSONResponse(content={"url": url, "redirect": True})
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(
            **cookie_kwargs(
                self.options.cookie_attributes,
                key=self.state_cookie,
                value=encode_state(
                    self.options.secret,
                    {"state": state, "verifier": verifier, "provider": provider_id, "callback_url": callback_url},
                ),
                max_age=OAUTH_STATE_TTL_SECONDS,
                secure_default=self._secure(request),
                path=self.options.base_path,
            )
        )
        return self._finish(request, resp)

    def _callback(self, request: Request) -> Response:
        provider_id = request.path_params["id"]
        provider = self.providers.get(provider_id)
        if provider is None:
            raise APIError(404, f"Provider not found: {provider_id}", code="PROVIDER_NOT_FOUND")

        error = request.query_params.get("error")
        if error:
            raise APIError(400, f"Provider returned an error: {error}", code="PROVIDER_ERROR")

        code = (request.query_params.get("code") or "").strip()
        state = (request.query_params.get("state") or "").strip()
        saved = decode_state(
            self.options.secret, request.cookies.get(self.state_cookie), max_age=OAUTH_STATE_TTL_SECONDS
        )
        if not saved or not state or saved.get("state") != state or saved.get("provider") != provider_id:
            raise APIError(400, "Invalid OAuth state", code="INVALID_STATE")
        if not code:
            raise APIError(400, "Missing authorization code", code="MISSING_CODE")

        try:
            tokens = provider.exchange_code(
                code=code,
                redirect_uri=self._callback_uri(request, provider_id),
                code_verifier=str(saved.get("verifier") or ""),
            )
            profile = provider.get_profile(tokens)
        except (ValueError, jwt.PyJWTError) as e:
            logger.warning("OAuth verification failed for %s: %s", provider_id, str(e))
            raise APIError(401, "OAuth code verification failed", code="INVALID_CODE") from e
        except requests.RequestException as e:
            logger.warning("OAuth provider request failed for %s: %s", provider_id, str(e))
            raise APIError(502, "OAuth provider request failed", code="PROVIDER_UNAVAILABLE") from e

        user = self._link_user(provider_id, profile, tokens)
        session = self._create_session(request, user)

        resp = RedirectResponse(url=str(saved.get("callback_url") or "/"), status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(**self._session_cookie_kwargs(request, session.token))
        resp.set_cookie(
            **clear_cookie_kwargs(
                self.options.cookie_attributes,
                key=self.state_cookie,
                secure_default=self._secure(request),
                path=self.options.base_path,
            )
        )
        return self._finish(request, resp, new_session=session)

    def _get_session(self, request: Request) -> Response:
        result = self.current_session(request.headers)
        if result is None:
            return self._finish(request, JSONResponse(content=None))
        resp = JSONResponse(content=result.to_public())
        if result.refreshed:
            resp.set_cookie(**self._session_cookie_kwargs(request, result.session.token))
        return self._finish(request, resp)

    def _sign_out(self, request: Request) -> Response:
        self.api.sign_out(request.headers)
        resp = JSONResponse(content={"success": True})
        resp.headers["Cache-Control"] = "no-store"
        resp.set_cookie(
            **clear_cookie_kwargs(
                self.options.cookie_attributes, key=self.session_cookie, secure_default=self._secure(request)
            )
        )
        return self._finish(request, resp)

    def _list_accounts(self, request: Request) -> Response:
        return self._finish(request, JSONResponse(content=self.api.list_user_accounts(request.headers)))

    def _ok(self, request: Request) -> Response:
        return self._finish(request, JSONResponse(content={"ok": True}))

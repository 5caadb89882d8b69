from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

from starlette.responses import JSONResponse, Response

from inkwell.auth.adapter import MongoAdapter
from inkwell.auth.bootstrap import provider_from_context, session_provider_plugin
from inkwell.auth.constants import AUTH_SESSION_COLLECTION, COOKIE_PREFIX
from inkwell.auth.hooks import AfterHook, AuthPlugin, HookContext, matching_hooks, run_after_hooks
from inkwell.auth.models import utcnow
from inkwell.auth.session import sign_token, token_from_set_cookie


def _ctx(path: str, *, params=None, request=None, returned=None, new_session=None) -> HookContext:
    return HookContext(
        path=path,
        params=params or {},
        request=request,
        returned=returned or Response(),
        new_session=new_session,
    )


def _session(mock_db, token: str = "tok123"):
    adapter = MongoAdapter(mock_db.db)
    user = adapter.create_user(email="a@example.com", name=None, image=None, email_verified=True)
    return adapter.create_session(
        token=token, user_id=user.id, expires_at=utcnow() + timedelta(days=7), ip_address=None, user_agent=None
    )


def test_provider_from_params() -> None:
    assert provider_from_context(_ctx("/callback/github", params={"id": "github"})) == "github"


def test_provider_from_request_path() -> None:
    request = MagicMock()
    request.url.path = "/api/v2/auth/callback/google"
    assert provider_from_context(_ctx("/callback/google", request=request)) == "google"


def test_provider_missing() -> None:
    request = MagicMock()
    request.url.path = "/auth/get-session"
    assert provider_from_context(_ctx("/get-session", request=request)) is None
    assert provider_from_context(_ctx("/get-session")) is None


def test_token_from_set_cookie_takes_token_before_signature() -> None:
    headers = [
        "inkwell-auth.oauth_state=; Max-Age=0; Path=/auth",
        f"inkwell-auth.session_token={sign_token('s3cret', 'abc_DEF-123')}; HttpOnly; Path=/; SameSite=lax",
    ]
    assert token_from_set_cookie(headers, cookie_name="inkwell-auth.session_token") == "abc_DEF-123"
    assert token_from_set_cookie(["malformed"]) is None
    assert token_from_set_cookie([]) is None


def test_plugin_matches_callback_paths_only(mock_db) -> None:
    plugin = session_provider_plugin(mock_db.db, session_collection=AUTH_SESSION_COLLECTION, cookie_prefix=COOKIE_PREFIX)
    assert plugin.id == "add-account-to-session"
    assert matching_hooks([plugin], _ctx("/callback/github"))
    assert not matching_hooks([plugin], _ctx("/get-session"))
    assert not matching_hooks([plugin], _ctx("/sign-in/social"))


def test_plugin_records_provider_from_new_session(mock_db) -> None:
    session = _session(mock_db)
    plugin = session_provider_plugin(mock_db.db, session_collection=AUTH_SESSION_COLLECTION, cookie_prefix=COOKIE_PREFIX)
    ctx = _ctx("/callback/github", params={"id": "github"}, new_session=session)
    run_after_hooks(matching_hooks([plugin], ctx), ctx)
    assert mock_db.db[AUTH_SESSION_COLLECTION].find_one({"token": session.token})["provider"] == "github"


def test_plugin_falls_back_to_set_cookie_header(mock_db) -> None:
    session = _session(mock_db, token="fromcookie")
    returned = JSONResponse(content=None)
    returned.set_cookie(f"{COOKIE_PREFIX}.session_token", sign_token("s3cret", session.token))
    plugin = session_provider_plugin(mock_db.db, session_collection=AUTH_SESSION_COLLECTION, cookie_prefix=COOKIE_PREFIX)
    ctx = _ctx("/callback/google", params={"id": "google"}, returned=returned)
    run_after_hooks(matching_hooks([plugin], ctx), ctx)
    assert mock_db.db[AUTH_SESSION_COLLECTION].find_one({"token": "fromcookie"})["provider"] == "google"


def test_plugin_records_provider_from_path_without_route_params(mock_db) -> None:
    session = _session(mock_db, token="pathonly")
    request = MagicMock()
    request.url.path = "/api/v2/auth/callback/github"
    plugin = session_provider_plugin(mock_db.db, session_collection=AUTH_SESSION_COLLECTION, cookie_prefix=COOKIE_PREFIX)
    ctx = _ctx("/callback/github", params={}, request=request, new_session=session)
    run_after_hooks(matching_hooks([plugin], ctx), ctx)
    assert mock_db.db[AUTH_SESSION_COLLECTION].find_one({"token": "pathonly"})["provider"] == "github"


def test_plugin_without_session_does_nothing(mock_db) -> None:
    session = _session(mock_db)
    plugin = session_provider_plugin(mock_db.db, session_collection=AUTH_SESSION_COLLECTION, cookie_prefix=COOKIE_PREFIX)
    ctx = _ctx("/callback/github", params={"id": "github"})
    run_after_hooks(matching_hooks([plugin], ctx), ctx)
    assert mock_db.db[AUTH_SESSION_COLLECTION].find_one({"token": session.token}).get("provider") is None


def test_failing_hook_does_not_stop_the_others() -> None:
    seen = []

    def _boom(ctx: HookContext) -> None:
        raise RuntimeError("hook failed")

    plugin = AuthPlugin(
        id="test",
        after_hooks=[
            AfterHook(matcher=lambda ctx: True, handler=_boom),
            AfterHook(matcher=lambda ctx: True, handler=lambda ctx: seen.append(ctx.path)),
        ],
    )
    ctx = _ctx("/ok")
    run_after_hooks(matching_hooks([plugin], ctx), ctx)
    assert seen == ["/ok"]

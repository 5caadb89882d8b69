from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, Request

from inkwell.auth.bootstrap import AuthFacade
from inkwell.configs.store import ConfigStore
from inkwell.settings import AppConfig


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store


def get_auth(request: Request) -> AuthFacade:
    return request.app.state.auth


def require_owner(request: Request) -> Dict[str, Any]:
    """
    Allow only the site owner. Returns the `{session, user}` mapping.

    No `WWW-Authenticate` header: browsers would show a basic-auth modal.
    """
    result = get_auth(request).api.get_session(request.headers)
    if not result:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not result["user"].get("is_owner"):
        raise HTTPException(status_code=403, detail="Owner access required")
    request.state.user = result["user"]
    return result


def ban_in_demo(request: Request) -> None:
    if get_app_config(request).demo_mode:
        raise HTTPException(status_code=403, detail="This operation is not allowed in demo mode")

"""
Plugin hooks for the auth engine.

After-hooks run once the response has been sent (Starlette background task), so
they cannot change the response and the client may act on it before they finish.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from starlette.requests import Request
from starlette.responses import Response

from inkwell.auth.models import Session

logger = logging.getLogger(__name__)


@dataclass
class HookContext:
    path: str  # route path relative to the auth base path, e.g. `/callback/github`
    params: Dict[str, Any]
    request: Optional[Request]
    returned: Response
    new_session: Optional[Session] = None


@dataclass(frozen=True)
class AfterHook:
    matcher: Callable[[HookContext], bool]
    handler: Callable[[HookContext], None]


@dataclass(frozen=True)
class AuthPlugin:
    id: str
    after_hooks: List[AfterHook] = field(default_factory=list)


def matching_hooks(plugins: List[AuthPlugin], ctx: HookContext) -> List[AfterHook]:
    return [hook for plugin in plugins for hook in plugin.after_hooks if hook.matcher(ctx)]


def run_after_hooks(hooks: List[AfterHook], ctx: HookContext) -> None:
    for hook in hooks:
        try:
            hook.handler(ctx)
        except Exception:
            # The response is already on the wire; nothing to report to the client.
            logger.exception("Auth after-hook failed for %s", ctx.path)

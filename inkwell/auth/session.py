from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from itsdangerous import BadSignature, BadTimeSignature, Signer, URLSafeTimedSerializer

SESSION_SALT = "inkwell-session-token-v1"
STATE_SALT = "inkwell-oauth-state-v1"


@dataclass(frozen=True)
class CookieAttributes:
    domain: Optional[str] = None
    secure: bool = True
    same_site: str = "lax"
    http_only: bool = True


def session_cookie_name(prefix: str) -> str:
    return f"{prefix}.session_token"


def state_cookie_name(prefix: str) -> str:
    return f"{prefix}.oauth_state"


def sign_token(secret: str, token: str) -> str:
    """Cookie value is `<token>.<signature>`; the token itself never contains a dot."""
    return Signer(secret, salt=SESSION_SALT).sign(token).decode("utf-8")


def unsign_token(secret: str, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return Signer(secret, salt=SESSION_SALT).unsign(value).decode("utf-8")
    except BadSignature:
        return None


def token_from_set_cookie(headers: Iterable[str], cookie_name: Optional[str] = None) -> Optional[str]:
    """
    Recover the session token from `Set-Cookie` header values.

    Takes the first `;`-separated part, the value after `=`, and the part before
    the signature dot. When `cookie_name` is given only that cookie is considered.
    """
    for header in headers:
        first = (header or "").split(";")[0]
        if "=" not in first:
            continue
        name, value = first.split("=", 1)
        if cookie_name and name.strip() != cookie_name:
            continue
        token = value.strip().strip('"').split(".")[0]
        if token:
            return token
    return None


def _state_serializer(secret: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=secret, salt=STATE_SALT)


def encode_state(secret: str, payload: Dict[str, Any]) -> str:
    return _state_serializer(secret).dumps(payload)


def decode_state(secret: str, value: Optional[str], *, max_age: int) -> Optional[Dict[str, Any]]:
    if not value:
        return None
    try:
        data = _state_serializer(secret).loads(value, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return None
    return data if isinstance(data, dict) else None


def cookie_kwargs(
    attrs: Optional[CookieAttributes],
    *,
    key: str,
    value: str,
    max_age: int,
    secure_default: bool,
    path: str = "/",
) -> Dict[str, Any]:
    if attrs is None:
        return {
            "key": key,
            "value": value,
            "max_age": max_age,
            "httponly": True,
            "secure": secure_default,
            "samesite": "lax",
            "path": path,
        }
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "httponly": attrs.http_only,
        "secure": attrs.secure,
        "samesite": attrs.same_site,
        "path": path,
        "domain": attrs.domain,
    }


def clear_cookie_kwargs(
    attrs: Optional[CookieAttributes], *, key: str, secure_default: bool, path: str = "/"
) -> Dict[str, Any]:
    return cookie_kwargs(attrs, key=key, value="", max_age=0, secure_default=secure_default, path=path)

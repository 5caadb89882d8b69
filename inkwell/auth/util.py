from __future__ import annotations

import base64
import hashlib
import os
from typing import Iterable, Optional
from urllib.parse import urlparse


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def random_token(nbytes: int = 32) -> str:
    # base64url alphabet has no ".", which keeps `<token>.<signature>` cookies splittable.
    return b64url(os.urandom(nbytes))


def pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return b64url(digest)


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def sanitize_callback_url(callback_url: Optional[str], trusted_origins: Iterable[str]) -> str:
    """
    Prevent open-redirects after login.

    Relative paths like `/posts` are kept; absolute URLs are allowed only when
    their origin is trusted. Anything else falls back to `/`.
    """
    p = (callback_url or "").strip().replace("\r", "").replace("\n", "")
    if not p:
        return "/"
    if p.startswith("/"):
        # Disallow scheme-relative: `//evil.com`
        return "/" if p.startswith("//") else p
    origin = origin_of(p)
    if origin and origin in set(trusted_origins):
        return p
    return "/"

from __future__ import annotations

from typing import Optional


class APIError(Exception):
    """
    Expected failure raised by the auth engine (bad state, unknown provider,
    missing session, ...). Carries the HTTP status the handler should answer with.
    """

    def __init__(self, status_code: int, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code or "API_ERROR"

"""
Standard response transform: JSON object keys leave the API in snake_case.

Endpoints whose payload must keep its exact keys (e.g. JSON schema documents
with `$ref`/`additionalProperties`) skip it.
"""
from __future__ import annotations

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"\1_\2", key).lower()


def snake_case_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {snake_case(k) if isinstance(k, str) else k: snake_case_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snake_case_keys(v) for v in value]
    return value

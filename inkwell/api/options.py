"""
Options API: read and patch the site configuration document.

Every route is owner-only. Reads mask the mail password; the JSON schema route
returns the schema untransformed.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from inkwell.api.deps import ban_in_demo, get_config_store, require_owner
from inkwell.api.transform import snake_case_keys
from inkwell.configs.models import MAIL_SECTION, redact_mail_secret, resolve_section
from inkwell.configs.store import ConfigStore, ConfigValidationError, UnknownConfigKeyError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["options"], dependencies=[Depends(require_owner)])


@router.get("")
def get_options(store: ConfigStore = Depends(get_config_store)) -> Dict[str, Any]:
    plain = store.get_config().model_dump(by_alias=True, mode="json")
    redact_mail_secret(plain.get(MAIL_SECTION))
    return snake_case_keys(plain)


@router.get("/jsonschema")
def get_json_schema(store: ConfigStore = Depends(get_config_store)) -> Dict[str, Any]:
    return store.json_schema()


@router.get("/{key}")
def get_option_key(key: str, store: ConfigStore = Depends(get_config_store)) -> Dict[str, Any]:
    value = store.get(key)
    if value is None:
        raise HTTPException(status_code=400, detail="key is not exists.")
    plain = value.model_dump(by_alias=True, mode="json")
    if resolve_section(key) == MAIL_SECTION:
        redact_mail_secret(plain)
    return {"data": snake_case_keys(plain)}


@router.patch("/{key}", dependencies=[Depends(ban_in_demo)])
def patch_option_key(
    key: str,
    body: Any = Body(...),
    store: ConfigStore = Depends(get_config_store),
) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise HTTPException(status_code=422, detail="body must be object")
    try:
        section = store.patch_and_valid(key, body)
    except UnknownConfigKeyError:
        raise HTTPException(status_code=400, detail="key is not exists.")
    except ConfigValidationError as e:
        logger.info("Rejected options patch for %s: %d error(s)", e.key, len(e.errors))
        raise HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors})

    plain = section.model_dump(by_alias=True, mode="json")
    if resolve_section(key) == MAIL_SECTION:
        redact_mail_secret(plain)
    return snake_case_keys(plain)

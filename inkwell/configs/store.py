"""
Persistence for the configuration document.

A single Mongo document holds every configuration section. Reads go through an
optional Redis cache; patches validate the merged section and write it back with
one `$set`. There is no compare-and-swap: concurrent patches to the same section
are last-write-wins.
"""
from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import redis
from pydantic import BaseModel, ValidationError
from pymongo.database import Database

from inkwell.configs.models import (
    MAIL_SECTION,
    REDACTED,
    AppOptions,
    resolve_section,
    section_aliases,
    section_model,
    to_alias_keys,
)

logger = logging.getLogger(__name__)

OPTIONS_COLLECTION = "options"
CONFIG_DOC_ID = "config"
CONFIG_CACHE_KEY = "inkwell:config"


class UnknownConfigKeyError(ValueError):
    def __init__(self, key: Any) -> None:
        super().__init__(f"unknown config key: {key!r}")
        self.key = key


class ConfigValidationError(ValueError):
    def __init__(self, key: str, errors: List[Dict[str, Any]]) -> None:
        super().__init__(f"invalid value for config key {key!r}")
        self.key = key
        self.errors = errors


def deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge `patch` into a copy of `base`: mappings recurse, everything else (lists too) is replaced."""
    out: Dict[str, Any] = copy.deepcopy(dict(base))
    for k, v in patch.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


class ConfigStore:
    def __init__(
        self,
        db: Database,
        cache: Optional[redis.Redis] = None,
        *,
        collection: str = OPTIONS_COLLECTION,
        cache_key: str = CONFIG_CACHE_KEY,
    ) -> None:
        self._collection = db[collection]
        self._cache = cache
        self._cache_key = cache_key

    @property
    def default_config(self) -> Dict[str, Any]:
        return AppOptions().model_dump(by_alias=True, mode="json")

    def init_config(self) -> AppOptions:
        """
        Create the document with defaults at first boot; on later boots only add
        sections that are missing. Existing values are never overwritten.
        """
        doc = self._collection.find_one({"_id": CONFIG_DOC_ID})
        defaults = self.default_config
        if doc is None:
            self._collection.insert_one({"_id": CONFIG_DOC_ID, **defaults})
            logger.info("Config document created with defaults")
        else:
            missing = {k: v for k, v in defaults.items() if doc.get(k) is None}
            if missing:
                self._collection.update_one({"_id": CONFIG_DOC_ID}, {"$set": missing})
                logger.info("Config document: added missing sections %s", sorted(missing))
        self._invalidate_cache()
        return self.get_config()

    def get_config(self) -> AppOptions:
        cached = self._read_cache()
        if cached is not None:
            return cached
        config = self._load()
        self._write_cache(config)
        return config

    def get(self, key: str) -> Optional[BaseModel]:
        alias = resolve_section(key)
        if alias is None:
            return None
        doc = self._raw_document()
        if doc.get(alias) is None:
            return None
        return getattr(self.get_config(), section_aliases()[alias])

    def patch_and_valid(self, key: str, body: Mapping[str, Any]) -> BaseModel:
        alias = resolve_section(key)
        if alias is None:
            raise UnknownConfigKeyError(key)

        current = self.get_config()
        current_section = getattr(current, section_aliases()[alias])
        current_plain = current_section.model_dump(by_alias=True, mode="json")

        # Reads hand out snake_case keys; accept them back as well as the aliases.
        patch = to_alias_keys(section_model(alias), body)
        if alias == MAIL_SECTION and patch.get("pass") == REDACTED:
            # The UI sends back the masked value it was given; keep the stored secret.
            patch.pop("pass")

        merged = deep_merge(current_plain, patch)
        try:
            section = section_model(alias).model_validate(merged)
        except ValidationError as e:
            errors = e.errors(include_url=False, include_input=False, include_context=False)
            raise ConfigValidationError(alias, errors) from e

        self._collection.update_one(
            {"_id": CONFIG_DOC_ID},
            {"$set": {alias: section.model_dump(by_alias=True, mode="json")}},
            upsert=True,
        )
        self._invalidate_cache()
        logger.info("Config section patched: %s", alias)
        return section

    def json_schema(self) -> Dict[str, Any]:
        schema = AppOptions.model_json_schema(by_alias=True)
        schema["default"] = self.default_config
        return schema

    def _raw_document(self) -> Dict[str, Any]:
        doc = self._collection.find_one({"_id": CONFIG_DOC_ID}) or {}
        doc.pop("_id", None)
        return doc

    def _load(self) -> AppOptions:
        doc = self._raw_document()
        # Stored sections are merged over defaults so documents written by older
        # versions still validate after new fields are added.
        merged = deep_merge(self.default_config, {k: v for k, v in doc.items() if isinstance(v, Mapping)})
        return AppOptions.model_validate(merged)

    def _read_cache(self) -> Optional[AppOptions]:
        if self._cache is None:
            return None
        try:
            raw = self._cache.get(self._cache_key)
        except redis.RedisError as e:
            logger.warning("Config cache read failed: %s", str(e))
            return None
        if not raw:
            return None
        try:
            return AppOptions.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Config cache entry is invalid, reloading: %s", str(e))
            return None

    def _write_cache(self, config: AppOptions) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(self._cache_key, config.model_dump_json(by_alias=True))
        except redis.RedisError as e:
            logger.warning("Config cache write failed: %s", str(e))

    def _invalidate_cache(self) -> None:
        if self._cache is None:
            return
        try:
            self._cache.delete(self._cache_key)
        except redis.RedisError as e:
            logger.warning("Config cache invalidation failed: %s", str(e))

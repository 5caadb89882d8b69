"""
Database and cache handles.

Handles are created explicitly by `open_resources()` and passed to the
components that need them; nothing connects at import time.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import redis
from pymongo import MongoClient
from pymongo.database import Database

from inkwell.settings import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "inkwell"


@dataclass
class Resources:
    mongo_client: MongoClient
    db: Database
    cache: Optional[redis.Redis] = None

    def ping(self) -> bool:
        """Best-effort connectivity check; failures are logged, not raised."""
        ok = True
        try:
            self.mongo_client.admin.command("ping")
        except Exception as e:
            logger.warning("MongoDB ping failed: %s", str(e))
            ok = False
        if self.cache is not None:
            try:
                self.cache.ping()
            except Exception as e:
                logger.warning("Redis ping failed: %s", str(e))
                ok = False
        return ok

    def close(self) -> None:
        if self.cache is not None:
            self.cache.close()
        self.mongo_client.close()


def open_resources(cfg: AppConfig) -> Resources:
    # MongoClient and redis.Redis connect lazily on first command.
    client: MongoClient = MongoClient(cfg.mongo_uri)
    db = client.get_default_database(default=DEFAULT_DB_NAME)
    cache = redis.Redis.from_url(cfg.redis_url, decode_responses=True) if cfg.redis_url else None
    # Avoid logging credentials; database name and cache presence are enough.
    logger.info("Resources: mongo_db=%s cache=%s", db.name, "redis" if cache is not None else "disabled")
    return Resources(mongo_client=client, db=db, cache=cache)

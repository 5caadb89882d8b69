"""
HTTP application for the core service.

Serves the options API and mounts the auth handler at the environment-dependent
auth base path. Database and cache handles are created by the factory (or
injected) and closed at shutdown.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool

from inkwell.api.options import router as options_router
from inkwell.auth.bootstrap import create_auth
from inkwell.auth.util import random_token
from inkwell.configs.store import ConfigStore
from inkwell.db import Resources, open_resources
from inkwell.settings import AppConfig, load_app_config

logger = logging.getLogger(__name__)


def _startup(resources: Resources, store: ConfigStore) -> None:
    """
    Check connectivity and make sure the config document exists.

    This should never prevent the server from starting; failures are logged.
    """
    resources.ping()
    try:
        store.init_config()
    except Exception as e:
        logger.warning("Config init failed: %s", str(e))


def create_app(cfg: Optional[AppConfig] = None, resources: Optional[Resources] = None) -> FastAPI:
    cfg = cfg or load_app_config()
    owns_resources = resources is None
    res = resources or open_resources(cfg)
    store = ConfigStore(res.db, res.cache)

    secret = cfg.auth_secret
    if not secret:
        if not cfg.is_dev:
            raise ValueError("AUTH_SECRET is required outside development")
        secret = random_token(32)
        logger.warning("AUTH_SECRET not set; using an ephemeral secret (sessions end on restart)")
    auth = create_auth(res.db, cfg.social_providers, cfg, secret=secret)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await run_in_threadpool(_startup, res, store)
        yield
        if owns_resources:
            res.close()

    app = FastAPI(title="Inkwell core", lifespan=lifespan)
    app.state.config = cfg
    app.state.config_store = store
    app.state.auth = auth.auth

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        logger.debug("%s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    app.include_router(options_router, prefix=f"{cfg.api_prefix}/options")
    app.mount(cfg.auth_base_path, auth.handler)
    return app


def run(host: str = "0.0.0.0", port: int = 2333) -> None:
    import uvicorn

    cfg = load_app_config()

    # Configure logging for the application
    log_level = cfg.log_level
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    app = create_app(cfg)
    logger.info("Starting core server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)

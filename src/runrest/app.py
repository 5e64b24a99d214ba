"""RunRest — FastAPI gateway application.

Exposes named functions to remote callers under group-scoped credentials.
Each group gets a public registration route and an unguessable execution
route; callers authenticate with a token bundle issued at registration.
"""

from __future__ import annotations

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from runrest.auth import make_api_key_checker
from runrest.config import RunRestConfig, load_config
from runrest.errors import RunRestError
from runrest.routes import groups, meta
from runrest.server import RunRestServer

logger = logging.getLogger("runrest")
audit_logger = logging.getLogger("runrest.audit")

_EXECUTION_HASH = re.compile(r"/execute-[^/]+")


def _mask_path(path: str) -> str:
    """Keep execution hashes out of the audit log."""
    return _EXECUTION_HASH.sub("/execute-***", path)


def _describe_validation(exc: RequestValidationError) -> str:
    """Field locations and messages only. Submitted values are not echoed back."""
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    return "Invalid request: " + "; ".join(problems)


@asynccontextmanager
async def lifespan(app: FastAPI):
    server: RunRestServer = app.state.server
    logger.info(
        "RunRest gateway ready (%d keys, active key %d, groups: %s)",
        len(server.keyring),
        server.active_key.get(),
        ", ".join(group.name for group in server.registry.groups()) or "none",
    )
    yield
    logger.info("RunRest gateway shut down")


def create_app(
    config: RunRestConfig | None = None,
    server: RunRestServer | None = None,
) -> FastAPI:
    """Application factory.

    Without a server, one is built from the config and the configured setup
    hook is run to add groups and define functions.
    """
    if server is None:
        if config is None:
            config = load_config()
        server = RunRestServer(config)
        server.run_setup_hook()
    config = server.config

    app = FastAPI(
        title="RunRest",
        description="Remote function execution under group-scoped, multi-key credentials",
        version=meta.VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.server = server

    check_key = make_api_key_checker(config.api_key)

    # ── Exception handlers ────────────────────────────────────

    @app.exception_handler(RunRestError)
    async def runrest_handler(request: Request, exc: RunRestError):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"error": _describe_validation(exc)})

    # ── Audit middleware ──────────────────────────────────────

    @app.middleware("http")
    async def audit_log(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start
        audit_logger.info(
            "%s %s %d %.3fs",
            request.method,
            _mask_path(request.url.path),
            response.status_code,
            elapsed,
        )
        return response

    # ── Routers ───────────────────────────────────────────────

    app.include_router(meta.router, dependencies=[Depends(check_key)])
    app.include_router(groups.router)

    return app

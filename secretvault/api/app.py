"""
SecretVault API — FastAPI application for user secret management.

The app is built by ``create_app`` with its service injected; the service is
reachable from handlers only through ``app.state`` (see api.deps).

Start:
    secretvault serve
    # or
    uvicorn secretvault.api.app:app --host 127.0.0.1 --port 9200
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from secretvault import __version__
from secretvault.api.middleware import ActorMiddleware, CorrelationMiddleware
from secretvault.api.ratelimit import RateLimiter
from secretvault.api.routers import health, secrets
from secretvault.config import Config, get_config
from secretvault.db import close_pool
from secretvault.vault.errors import SecretVaultError
from secretvault.vault.repository import (
    InMemorySecretRepository,
    PostgresSecretRepository,
    SecretRepository,
)
from secretvault.vault.service import SecretService

logger = logging.getLogger(__name__)


def build_repository(cfg: Config) -> SecretRepository:
    if cfg.storage == "memory":
        logger.warning("Using in-memory secret storage; data is lost on restart")
        return InMemorySecretRepository()
    return PostgresSecretRepository()


def _format_validation_errors(exc: RequestValidationError) -> list[str]:
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else err.get("msg", "invalid"))
    return details


async def _vault_error_handler(request: Request, exc: SecretVaultError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"error": "One or more of your parameters are invalid", "details": _format_validation_errors(exc)},
        status_code=400,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    if isinstance(app.state.service.repository, PostgresSecretRepository):
        close_pool()


def create_app(
    service: SecretService | None = None,
    config: Config | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    cfg = config or get_config()
    if service is None:
        service = SecretService(build_repository(cfg))

    app = FastAPI(
        title="SecretVault",
        description="Organization-scoped storage for web logins, credit cards and secure notes.",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.service = service
    app.state.rate_limiter = rate_limiter or RateLimiter(cfg.rate_limit)

    app.add_middleware(ActorMiddleware)
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(SecretVaultError, _vault_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(health.router)
    app.include_router(secrets.router)
    return app


app = create_app()

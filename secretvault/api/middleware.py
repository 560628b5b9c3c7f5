"""API middleware — actor context extraction and correlation IDs."""

from __future__ import annotations

import logging
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from secretvault.vault.models import ActorContext

logger = logging.getLogger(__name__)

# Session kinds accepted on secret routes
ALLOWED_AUTH_METHODS = frozenset({"JWT"})


def actor_from_headers(headers) -> ActorContext | None:
    """Build the actor context from identity headers set by the auth gateway.

    Returns None when the identity is incomplete or the session kind is not
    accepted.
    """
    actor_id = headers.get("x-actor-id", "").strip()
    org_id = headers.get("x-org-id", "").strip()
    auth_method = headers.get("x-auth-method", "").strip().upper()
    if not actor_id or not org_id:
        return None
    if auth_method not in ALLOWED_AUTH_METHODS:
        return None
    return ActorContext(
        actor_type=headers.get("x-actor-type", "user").strip() or "user",
        actor_id=actor_id,
        auth_method=auth_method,
        org_id=org_id,
    )


class ActorMiddleware(BaseHTTPMiddleware):
    """Attach request.state.actor (ActorContext or None) to every request.

    Rejection happens in the get_actor dependency so unauthenticated routes
    like /health stay reachable.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.actor = actor_from_headers(request.headers)
        return await call_next(request)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Correlation-Id to every request/response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get("x-correlation-id") or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id
        return response

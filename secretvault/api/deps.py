"""Shared FastAPI dependencies — actor, service and rate limiting."""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from secretvault.vault.errors import RateLimitedError, UnauthorizedError
from secretvault.vault.models import ActorContext
from secretvault.vault.service import SecretService


def get_actor(request: Request) -> ActorContext:
    """Return the actor attached by ActorMiddleware, or raise 401."""
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise UnauthorizedError("Unauthenticated requests are not allowed. Try logging in")
    return actor


def get_service(request: Request) -> SecretService:
    return request.app.state.service


def rate_limit(rate_class: str) -> Callable[..., ActorContext]:
    """Dependency factory: authenticate, then admit or reject by rate class.

    Keyed by method, rate class and actor, so each route has its own window
    per caller.
    """

    def dependency(request: Request, actor: ActorContext = Depends(get_actor)) -> ActorContext:
        limiter = request.app.state.rate_limiter
        key = f"{request.method}:{rate_class}:{actor.org_id}:{actor.actor_id}"
        if not limiter.allow(key, rate_class):
            raise RateLimitedError("Too many requests, slow down")
        return actor

    return dependency

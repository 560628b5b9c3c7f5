"""
Shared fixtures for the SecretVault test suite.

Services run against InMemorySecretRepository with a deterministic clock;
API tests drive the FastAPI app through httpx's ASGITransport.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from secretvault.api.app import create_app
from secretvault.api.ratelimit import RateLimiter
from secretvault.config import Config, RateLimitConfig, reset_config
from secretvault.vault.models import ActorContext
from secretvault.vault.repository import InMemorySecretRepository
from secretvault.vault.service import SecretService

ORG_A = "org-alpha"
ORG_B = "org-beta"
START = datetime(2025, 3, 1, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Returns START, START+1s, START+2s, ... on successive calls."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


def _headers_for(actor: ActorContext) -> dict[str, str]:
    return {
        "X-Actor-Type": actor.actor_type,
        "X-Actor-Id": actor.actor_id,
        "X-Auth-Method": actor.auth_method,
        "X-Org-Id": actor.org_id,
    }


@pytest.fixture
def auth_headers():
    """Identity headers the auth gateway would set for an actor."""
    return _headers_for


@pytest.fixture(autouse=True)
def clean_config():
    """Reset config singleton between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def start_time():
    return START


@pytest.fixture
def clean_env(monkeypatch):
    """Remove SecretVault env vars that leak between tests."""
    for key in [
        "SECRETVAULT_STORAGE",
        "SECRETVAULT_LOG_LEVEL",
        "SECRETVAULT_DB_HOST",
        "SECRETVAULT_DB_PORT",
        "SECRETVAULT_DB_NAME",
        "SECRETVAULT_DB_USER",
        "SECRETVAULT_DB_PASSWORD",
        "SECRETVAULT_DB_POOL_MIN",
        "SECRETVAULT_DB_POOL_MAX",
        "SECRETVAULT_READ_LIMIT",
        "SECRETVAULT_WRITE_LIMIT",
        "SECRETVAULT_RATE_WINDOW",
        "SECRETVAULT_API_HOST",
        "SECRETVAULT_API_PORT",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def actor():
    return ActorContext(actor_type="user", actor_id="user-1", auth_method="JWT", org_id=ORG_A)


@pytest.fixture
def teammate():
    """Another user in the same organization."""
    return ActorContext(actor_type="user", actor_id="user-2", auth_method="JWT", org_id=ORG_A)


@pytest.fixture
def outsider():
    """A user from a different organization."""
    return ActorContext(actor_type="user", actor_id="user-9", auth_method="JWT", org_id=ORG_B)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo():
    return InMemorySecretRepository()


@pytest.fixture
def service(repo, clock):
    return SecretService(repo, clock=clock)


@pytest.fixture
def web_login_payload():
    return {
        "credential_type": "WEB_LOGIN",
        "user_id": "user-1",
        "organization_id": ORG_A,
        "username": "alice",
        "password": "hunter2",
    }


@pytest.fixture
def app_config():
    return Config(storage="memory", rate_limit=RateLimitConfig(read_limit=1000, write_limit=1000))


@pytest.fixture
def app(service, app_config):
    return create_app(service=service, config=app_config, rate_limiter=RateLimiter(app_config.rate_limit))


@pytest_asyncio.fixture
async def test_client(app):
    """Async HTTP client wrapping the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

"""
Centralized configuration for SecretVault.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from secretvault.config import get_config
    cfg = get_config()
    print(cfg.db.name)       # "secretvault"
    print(cfg.storage)       # "postgres" or "memory"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

STORAGE_BACKENDS = ("postgres", "memory")


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection and pool settings."""

    host: str = ""  # empty: connect over the local Unix socket
    port: int = 5432
    name: str = "secretvault"
    user: str = "secretvault"
    password: str = ""
    pool_min: int = 1
    pool_max: int = 10

    @property
    def connect_kwargs(self) -> dict[str, str | int]:
        """Keyword arguments for psycopg2.connect(); unset values are omitted."""
        kwargs: dict[str, str | int] = {"dbname": self.name, "port": self.port}
        for key in ("host", "user", "password"):
            value = getattr(self, key)
            if value:
                kwargs[key] = value
        return kwargs


@dataclass(frozen=True)
class RateLimitConfig:
    """Requests allowed per window, per rate class."""

    read_limit: int = 600
    write_limit: int = 200
    window_seconds: float = 60.0

    def limit_for(self, rate_class: str) -> int:
        if rate_class == "write":
            return self.write_limit
        return self.read_limit


@dataclass(frozen=True)
class Config:
    """Top-level SecretVault configuration."""

    storage: str = "postgres"
    log_level: str = "INFO"

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    api_host: str = "127.0.0.1"
    api_port: int = 9200

    @property
    def api_url(self) -> str:
        return f"http://{self.api_host}:{self.api_port}"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    storage = os.environ.get("SECRETVAULT_STORAGE", "postgres").lower()
    if storage not in STORAGE_BACKENDS:
        raise ValueError(
            f"SECRETVAULT_STORAGE must be one of {', '.join(STORAGE_BACKENDS)}, got {storage!r}"
        )

    db = DatabaseConfig(
        host=os.environ.get("SECRETVAULT_DB_HOST", ""),
        port=int(os.environ.get("SECRETVAULT_DB_PORT", "5432")),
        name=os.environ.get("SECRETVAULT_DB_NAME", "secretvault"),
        user=os.environ.get("SECRETVAULT_DB_USER", os.environ.get("USER", "secretvault")),
        password=os.environ.get("SECRETVAULT_DB_PASSWORD", ""),
        pool_min=int(os.environ.get("SECRETVAULT_DB_POOL_MIN", "1")),
        pool_max=int(os.environ.get("SECRETVAULT_DB_POOL_MAX", "10")),
    )

    rate_limit = RateLimitConfig(
        read_limit=int(os.environ.get("SECRETVAULT_READ_LIMIT", "600")),
        write_limit=int(os.environ.get("SECRETVAULT_WRITE_LIMIT", "200")),
        window_seconds=float(os.environ.get("SECRETVAULT_RATE_WINDOW", "60")),
    )

    return Config(
        storage=storage,
        log_level=os.environ.get("SECRETVAULT_LOG_LEVEL", "INFO").upper(),
        db=db,
        rate_limit=rate_limit,
        api_host=os.environ.get("SECRETVAULT_API_HOST", "127.0.0.1"),
        api_port=int(os.environ.get("SECRETVAULT_API_PORT", "9200")),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None

"""
Secret repositories — the storage boundary of the vault.

``SecretRepository`` is the capability the service depends on. Two
implementations ship:

- ``PostgresSecretRepository``: ``user_secrets`` table via the pooled
  psycopg2 connections in ``secretvault.db``.
- ``InMemorySecretRepository``: process-local dict guarded by a lock, for
  local development and tests.

All reads see only active rows (``deleted_at IS NULL``) of the requested
organization. ``mark_deleted`` is an atomic compare-and-set on ``deleted_at``.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from secretvault.db.connection import get_connection
from secretvault.vault.errors import StorageError
from secretvault.vault.models import (
    PAYLOAD_COLUMNS,
    CredentialType,
    UserSecret,
    secret_from_row,
    secret_to_row,
)

logger = logging.getLogger(__name__)

# Columns update_partial may touch besides updated_at
UPDATABLE_COLUMNS: frozenset[str] = frozenset(PAYLOAD_COLUMNS) | {"type"}

_ROW_COLUMNS = (
    "id",
    "user_id",
    "organization_id",
    "type",
    *PAYLOAD_COLUMNS,
    "created_at",
    "updated_at",
    "deleted_at",
)


def _check_columns(fields: dict[str, Any]) -> None:
    bad = sorted(set(fields) - UPDATABLE_COLUMNS)
    if bad:
        raise ValueError(f"Columns not updatable: {', '.join(bad)}")


class SecretRepository(ABC):
    """Storage capability required by SecretService."""

    @abstractmethod
    def insert(self, secret: UserSecret) -> None: ...

    @abstractmethod
    def find_by_id(self, secret_id: str, organization_id: str) -> UserSecret | None:
        """Return the active secret with *secret_id* in the organization, or None."""
        ...

    @abstractmethod
    def update_partial(
        self,
        secret_id: str,
        organization_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
        expected_type: CredentialType,
    ) -> bool:
        """Write only *fields* (plus updated_at) on an active secret.

        The write only lands while the stored type is still *expected_type*,
        so payload columns are never written onto a row whose type changed
        after it was read. Returns False when no row matched.
        """
        ...

    @abstractmethod
    def mark_deleted(
        self, secret_id: str, organization_id: str, deleted_at: datetime
    ) -> UserSecret | None:
        """Atomically soft-delete an active secret and return the new snapshot.

        Returns None if the secret is absent, foreign, or already deleted.
        """
        ...

    @abstractmethod
    def list_active(
        self,
        organization_id: str,
        offset: int,
        limit: int,
    ) -> tuple[list[UserSecret], int]:
        """Return (window ordered by created_at then id, unpaginated total)."""
        ...

    @abstractmethod
    def check_health(self) -> dict: ...


# ─── PostgreSQL ──────────────────────────────────────────────────────────


@contextmanager
def _storage_errors(operation: str) -> Generator[None, None, None]:
    try:
        yield
    except (psycopg2.Error, ConnectionError) as e:
        logger.error("user_secrets %s failed: %s", operation, e)
        raise StorageError(f"Storage failure during {operation}") from e


class PostgresSecretRepository(SecretRepository):
    def insert(self, secret: UserSecret) -> None:
        row = secret_to_row(secret)
        cols = ", ".join(_ROW_COLUMNS)
        placeholders = ", ".join(["%s"] * len(_ROW_COLUMNS))
        with _storage_errors("insert"), get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                f"INSERT INTO user_secrets ({cols}) VALUES ({placeholders})",
                [row[c] for c in _ROW_COLUMNS],
            )

    def find_by_id(self, secret_id: str, organization_id: str) -> UserSecret | None:
        with _storage_errors("find_by_id"), get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                """
                SELECT * FROM user_secrets
                WHERE id = %s AND organization_id = %s AND deleted_at IS NULL
            """,
                (secret_id, organization_id),
            )
            row = cur.fetchone()
            return secret_from_row(row) if row else None

    def update_partial(
        self,
        secret_id: str,
        organization_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
        expected_type: CredentialType,
    ) -> bool:
        _check_columns(fields)
        sets = [f"{col} = %s" for col in fields]
        vals: list[Any] = list(fields.values())
        sets.append("updated_at = %s")
        vals.extend([updated_at, secret_id, organization_id, expected_type.value])

        with _storage_errors("update_partial"), get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                f"UPDATE user_secrets SET {', '.join(sets)} "
                "WHERE id = %s AND organization_id = %s AND deleted_at IS NULL AND type = %s",
                vals,
            )
            ok: bool = cur.rowcount > 0
            return ok

    def mark_deleted(
        self, secret_id: str, organization_id: str, deleted_at: datetime
    ) -> UserSecret | None:
        with _storage_errors("mark_deleted"), get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                """
                UPDATE user_secrets SET deleted_at = %s, updated_at = %s
                WHERE id = %s AND organization_id = %s AND deleted_at IS NULL
                RETURNING *
            """,
                (deleted_at, deleted_at, secret_id, organization_id),
            )
            row = cur.fetchone()
            return secret_from_row(row) if row else None

    def list_active(
        self, organization_id: str, offset: int, limit: int
    ) -> tuple[list[UserSecret], int]:
        with _storage_errors("list_active"), get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                "SELECT COUNT(*) AS total FROM user_secrets "
                "WHERE organization_id = %s AND deleted_at IS NULL",
                (organization_id,),
            )
            total: int = cur.fetchone()["total"]  # type: ignore[index]
            cur.execute(
                """
                SELECT * FROM user_secrets
                WHERE organization_id = %s AND deleted_at IS NULL
                ORDER BY created_at ASC, id ASC
                OFFSET %s LIMIT %s
            """,
                (organization_id, offset, limit),
            )
            return [secret_from_row(r) for r in cur.fetchall()], total

    def check_health(self) -> dict:
        with _storage_errors("check_health"), get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM user_secrets WHERE deleted_at IS NULL")
            active: int = cur.fetchone()[0]  # type: ignore[index]
            return {"status": "ok", "backend": "postgres", "activeSecrets": active}


# ─── In-memory ───────────────────────────────────────────────────────────


class InMemorySecretRepository(SecretRepository):
    """Process-local repository. Every operation holds one lock."""

    def __init__(self) -> None:
        self._rows: dict[str, UserSecret] = {}
        self._lock = threading.Lock()

    def _active(self, secret_id: str, organization_id: str) -> UserSecret | None:
        secret = self._rows.get(secret_id)
        if secret is None or not secret.is_active or secret.organization_id != organization_id:
            return None
        return secret

    def insert(self, secret: UserSecret) -> None:
        with self._lock:
            if secret.id in self._rows:
                raise StorageError(f"Duplicate secret id {secret.id}")
            self._rows[secret.id] = secret

    def find_by_id(self, secret_id: str, organization_id: str) -> UserSecret | None:
        with self._lock:
            return self._active(secret_id, organization_id)

    def update_partial(
        self,
        secret_id: str,
        organization_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
        expected_type: CredentialType,
    ) -> bool:
        _check_columns(fields)
        with self._lock:
            secret = self._active(secret_id, organization_id)
            if secret is None or secret.type != expected_type:
                return False
            row = secret_to_row(secret)
            row.update(fields)
            row["updated_at"] = updated_at
            self._rows[secret_id] = secret_from_row(row)
            return True

    def mark_deleted(
        self, secret_id: str, organization_id: str, deleted_at: datetime
    ) -> UserSecret | None:
        with self._lock:
            secret = self._active(secret_id, organization_id)
            if secret is None:
                return None
            row = secret_to_row(secret)
            row["deleted_at"] = deleted_at
            row["updated_at"] = deleted_at
            deleted = secret_from_row(row)
            self._rows[secret_id] = deleted
            return deleted

    def list_active(
        self,
        organization_id: str,
        offset: int,
        limit: int,
    ) -> tuple[list[UserSecret], int]:
        with self._lock:
            matches = [
                s
                for s in self._rows.values()
                if s.is_active
                and s.organization_id == organization_id
            ]
        matches.sort(key=lambda s: (s.created_at, s.id))
        return matches[offset : offset + limit], len(matches)

    def check_health(self) -> dict:
        with self._lock:
            active = sum(1 for s in self._rows.values() if s.is_active)
        return {"status": "ok", "backend": "memory", "activeSecrets": active}

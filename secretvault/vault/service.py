"""
Secret management service — organization-scoped create/list/update/delete.

The service is stateless: it receives its repository, normalizer, clock and id
factory at construction and holds nothing between calls. Every operation is
scoped to the actor's organization; a secret outside that scope behaves
exactly like one that does not exist.

Mutating calls accept an optional ``cancel`` event. It is checked after all
reads and validation, right before the single repository write. A cancelled
call raises OperationCancelledError and writes nothing; once the write is
issued it runs to completion.

Usage:
    from secretvault.vault import InMemorySecretRepository, SecretService

    service = SecretService(InMemorySecretRepository())
    secret_id = service.create_secret(actor, {"credential_type": "WEB_LOGIN", ...})
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from secretvault.vault.errors import NotFoundError, OperationCancelledError, ValidationError
from secretvault.vault.models import (
    ActorContext,
    Credential,
    SecretPage,
    UserSecret,
    credential_to_row,
    payload_fields,
)
from secretvault.vault.normalizer import CredentialNormalizer
from secretvault.vault.repository import SecretRepository

logger = logging.getLogger(__name__)

MAX_OFFSET = 100
MIN_LIMIT = 1
MAX_LIMIT = 100


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _ensure_not_cancelled(cancel: threading.Event | None, operation: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.warning("%s cancelled before write", operation)
        raise OperationCancelledError(f"{operation} cancelled; nothing was written")


class SecretService:
    def __init__(
        self,
        repository: SecretRepository,
        normalizer: CredentialNormalizer | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._repository = repository
        self._normalizer = normalizer or CredentialNormalizer()
        self._clock = clock or _utcnow
        self._id_factory = id_factory or _new_id

    @property
    def repository(self) -> SecretRepository:
        return self._repository

    # ─── Reads ───────────────────────────────────────────────────────────

    def list_secrets(self, actor: ActorContext, offset: int = 0, limit: int = 25) -> SecretPage:
        """Active secrets of the actor's organization, oldest first.

        ``total_count`` is the size of the whole matching set, not the window.
        Out-of-range paging is rejected, never clamped.
        """
        if not 0 <= offset <= MAX_OFFSET:
            raise ValidationError(f"offset must be between 0 and {MAX_OFFSET}, got {offset}")
        if not MIN_LIMIT <= limit <= MAX_LIMIT:
            raise ValidationError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}, got {limit}")

        secrets, total = self._repository.list_active(actor.org_id, offset, limit)
        return SecretPage(secrets=secrets, total_count=total)

    def get_secret(self, actor: ActorContext, secret_id: str) -> UserSecret:
        """Return the active secret visible to *actor*, or raise NotFoundError."""
        secret = None
        if _is_uuid(secret_id):
            secret = self._repository.find_by_id(secret_id, actor.org_id)
        if secret is None:
            raise NotFoundError()
        return secret

    # ─── Mutations ───────────────────────────────────────────────────────

    def create_secret(
        self,
        actor: ActorContext,
        payload: Mapping[str, Any],
        *,
        cancel: threading.Event | None = None,
    ) -> str:
        """Normalize and persist a new secret. Returns its id.

        *payload* carries ``credential_type``, ``user_id``, optionally
        ``organization_id`` (must match the actor's), and any payload columns.
        """
        credential = self._normalizer.build(payload.get("credential_type"), payload)

        org_id = payload.get("organization_id") or actor.org_id
        if org_id != actor.org_id:
            raise ValidationError("organizationId does not match the authenticated organization")
        user_id = payload.get("user_id") or actor.actor_id

        now = self._clock()
        secret = UserSecret(
            id=self._id_factory(),
            user_id=user_id,
            organization_id=actor.org_id,
            credential=credential,
            created_at=now,
            updated_at=now,
            deleted_at=None,
        )

        _ensure_not_cancelled(cancel, "create_secret")
        self._repository.insert(secret)
        logger.info(
            "Created %s secret %s for user %s in org %s",
            secret.type.value,
            secret.id,
            secret.user_id,
            secret.organization_id,
        )
        return secret.id

    def update_secret(
        self,
        actor: ActorContext,
        secret_id: str,
        changes: Mapping[str, Any],
        credential_type: Any = None,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Apply a partial update.

        Only keys present in *changes* are written. ``updated_at`` is bumped
        even when nothing else changes.
        """
        current = self.get_secret(actor, secret_id)
        updated = self._normalizer.apply_update(current.credential, changes, credential_type)
        fields = self._changed_columns(current.credential, updated, changes)

        _ensure_not_cancelled(cancel, "update_secret")
        written = self._repository.update_partial(
            secret_id, actor.org_id, fields, self._clock(), expected_type=current.type
        )
        if not written:
            # Deleted or retyped between the read and the write
            raise NotFoundError()
        logger.info("Updated secret %s (fields: %s)", secret_id, sorted(fields))

    def delete_secret(
        self,
        actor: ActorContext,
        secret_id: str,
        *,
        cancel: threading.Event | None = None,
    ) -> UserSecret | None:
        """Soft-delete a secret. Returns the deleted snapshot, or None.

        Only the caller that performs the active->deleted transition gets a
        snapshot; absent, foreign, and already-deleted secrets all yield None.
        """
        if not _is_uuid(secret_id):
            return None

        _ensure_not_cancelled(cancel, "delete_secret")
        deleted = self._repository.mark_deleted(secret_id, actor.org_id, self._clock())
        if deleted is None:
            logger.info("Delete of secret %s in org %s matched nothing", secret_id, actor.org_id)
            return None
        logger.info("Soft-deleted secret %s in org %s", secret_id, actor.org_id)
        return deleted

    # ─── Helpers ─────────────────────────────────────────────────────────

    @staticmethod
    def _changed_columns(
        before: Credential, after: Credential, changes: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Storage columns to write for an update.

        On a type change every payload column is rewritten so stale fields of
        the previous type are cleared. Otherwise only the supplied keys.
        """
        row = credential_to_row(after)
        if after.type != before.type:
            return {"type": after.type.value, **row}
        wanted = payload_fields(after.type)
        return {k: row[k] for k in changes if k in wanted}

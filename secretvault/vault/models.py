"""
Vault data models and row converters.

Inside the service a secret's payload is a tagged variant: exactly one of
``WebLogin``, ``CreditCard`` or ``SecureNote``. The flat, nullable-column row
only exists at the repository boundary (``secret_to_row`` / ``secret_from_row``)
and the API boundary (``secret_to_dict``).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any


class CredentialType(str, enum.Enum):
    WEB_LOGIN = "WEB_LOGIN"
    CREDIT_CARD = "CREDIT_CARD"
    SECURE_NOTE = "SECURE_NOTE"


@dataclass(frozen=True)
class ActorContext:
    """Authenticated identity and organization scope attached to a request."""

    actor_type: str
    actor_id: str
    auth_method: str
    org_id: str


@dataclass(frozen=True)
class WebLogin:
    username: str | None = None
    password: str | None = None

    type = CredentialType.WEB_LOGIN


@dataclass(frozen=True)
class CreditCard:
    card_number: str | None = None
    expiry_date: date | None = None
    cvv: str | None = None

    type = CredentialType.CREDIT_CARD


@dataclass(frozen=True)
class SecureNote:
    title: str | None = None
    content: str | None = None

    type = CredentialType.SECURE_NOTE


Credential = WebLogin | CreditCard | SecureNote

CREDENTIAL_CLASSES: dict[CredentialType, type] = {
    CredentialType.WEB_LOGIN: WebLogin,
    CredentialType.CREDIT_CARD: CreditCard,
    CredentialType.SECURE_NOTE: SecureNote,
}

# Flat storage columns, in table order
PAYLOAD_COLUMNS: tuple[str, ...] = (
    "username",
    "password",
    "card_number",
    "expiry_date",
    "cvv",
    "title",
    "content",
)


def payload_fields(credential_type: CredentialType) -> tuple[str, ...]:
    """Names of the payload columns meaningful for *credential_type*."""
    return tuple(f.name for f in fields(CREDENTIAL_CLASSES[credential_type]))


@dataclass(frozen=True)
class UserSecret:
    id: str
    user_id: str
    organization_id: str
    credential: Credential
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @property
    def type(self) -> CredentialType:
        return self.credential.type

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


@dataclass(frozen=True)
class SecretPage:
    """One pagination window plus the size of the unpaginated match set."""

    secrets: list[UserSecret]
    total_count: int


def credential_to_row(credential: Credential) -> dict[str, Any]:
    """Flatten a credential: every payload column present, irrelevant ones None."""
    row: dict[str, Any] = dict.fromkeys(PAYLOAD_COLUMNS)
    for f in fields(credential):
        row[f.name] = getattr(credential, f.name)
    return row


def row_to_credential(row: dict) -> Credential:
    credential_type = CredentialType(row["type"])
    cls = CREDENTIAL_CLASSES[credential_type]
    return cls(**{name: row.get(name) for name in payload_fields(credential_type)})


def secret_to_row(secret: UserSecret) -> dict[str, Any]:
    """Convert a UserSecret into a ``user_secrets`` row dict."""
    return {
        "id": secret.id,
        "user_id": secret.user_id,
        "organization_id": secret.organization_id,
        "type": secret.type.value,
        **credential_to_row(secret.credential),
        "created_at": secret.created_at,
        "updated_at": secret.updated_at,
        "deleted_at": secret.deleted_at,
    }


def secret_from_row(row: dict) -> UserSecret:
    """Convert a ``user_secrets`` row (RealDictCursor or plain dict) into a UserSecret."""
    return UserSecret(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        organization_id=str(row["organization_id"]),
        credential=row_to_credential(row),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row.get("deleted_at"),
    )


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def secret_to_dict(secret: UserSecret) -> dict:
    """Convert a UserSecret to the API response shape."""
    row = credential_to_row(secret.credential)
    return {
        "id": secret.id,
        "userId": secret.user_id,
        "organizationId": secret.organization_id,
        "type": secret.type.value,
        "username": row["username"],
        "password": row["password"],
        "cardNumber": row["card_number"],
        "expiryDate": _iso(row["expiry_date"]),
        "cvv": row["cvv"],
        "title": row["title"],
        "content": row["content"],
        "createdAt": _iso(secret.created_at),
        "updatedAt": _iso(secret.updated_at),
        "deletedAt": _iso(secret.deleted_at),
    }

"""Pydantic request models for the user-secrets API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from secretvault.vault.models import CredentialType

# Request field name -> storage column
PAYLOAD_FIELD_MAP: dict[str, str] = {
    "username": "username",
    "password": "password",
    "cardNumber": "card_number",
    "expiryDate": "expiry_date",
    "cvv": "cvv",
    "title": "title",
    "content": "content",
}


class CreateSecretRequest(BaseModel):
    credentialType: CredentialType
    username: str | None = None
    password: str | None = None
    cardNumber: str | None = None
    expiryDate: str | None = None
    cvv: str | None = None
    title: str | None = None
    content: str | None = None
    organizationId: str
    userId: str

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            column: getattr(self, name) for name, column in PAYLOAD_FIELD_MAP.items()
        }
        payload["credential_type"] = self.credentialType
        payload["organization_id"] = self.organizationId
        payload["user_id"] = self.userId
        return payload


class UpdateSecretRequest(BaseModel):
    """Every field optional. Omitted fields are left unchanged."""

    credentialType: CredentialType | None = None
    username: str | None = None
    password: str | None = None
    cardNumber: str | None = None
    expiryDate: str | None = None
    cvv: str | None = None
    title: str | None = None
    content: str | None = None
    # Accepted for compatibility with older clients; ownership never changes
    organizationId: str | None = None
    userId: str | None = None

    def to_changes(self) -> dict[str, Any]:
        """Storage-column changes for the fields the client actually sent."""
        sent = self.model_dump(exclude_unset=True)
        return {column: sent[name] for name, column in PAYLOAD_FIELD_MAP.items() if name in sent}

"""
SecretVault core — organization-scoped credential storage.

Public API:
    SecretService(repository)          → create/list/update/delete
    CredentialNormalizer()             → type-tagged payload → stored shape
    PostgresSecretRepository()         → user_secrets table
    InMemorySecretRepository()         → process-local store
"""

from __future__ import annotations

from secretvault.vault.errors import (
    NotFoundError,
    OperationCancelledError,
    RateLimitedError,
    SecretVaultError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from secretvault.vault.models import (
    ActorContext,
    CreditCard,
    CredentialType,
    SecretPage,
    SecureNote,
    UserSecret,
    WebLogin,
    secret_to_dict,
)
from secretvault.vault.normalizer import CredentialNormalizer
from secretvault.vault.repository import (
    InMemorySecretRepository,
    PostgresSecretRepository,
    SecretRepository,
)
from secretvault.vault.service import SecretService

__all__ = [
    "ActorContext",
    "CreditCard",
    "CredentialNormalizer",
    "CredentialType",
    "InMemorySecretRepository",
    "NotFoundError",
    "OperationCancelledError",
    "PostgresSecretRepository",
    "RateLimitedError",
    "SecretPage",
    "SecretRepository",
    "SecretService",
    "SecretVaultError",
    "SecureNote",
    "StorageError",
    "UnauthorizedError",
    "UserSecret",
    "ValidationError",
    "WebLogin",
    "secret_to_dict",
]

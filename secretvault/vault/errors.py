"""Error taxonomy for the secret vault.

The API layer maps each class to an HTTP status via ``status_code``.
"""

from __future__ import annotations


class SecretVaultError(Exception):
    """Base class for all vault errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SecretVaultError):
    """Malformed input: unknown credential type, bad date, out-of-range paging."""

    status_code = 400


class NotFoundError(SecretVaultError):
    """Secret missing, soft-deleted, or outside the actor's organization."""

    status_code = 404

    def __init__(self, message: str = "Secret not found") -> None:
        super().__init__(message)


class UnauthorizedError(SecretVaultError):
    """Missing or unusable actor context."""

    status_code = 401


class RateLimitedError(SecretVaultError):
    status_code = 429


class StorageError(SecretVaultError):
    """The repository failed. Fatal for the current request."""

    status_code = 500


class OperationCancelledError(SecretVaultError):
    """The caller cancelled before the write was issued. Nothing was written."""

    status_code = 499

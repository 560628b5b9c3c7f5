"""SecretVault — organization-scoped storage for personal credentials."""

__version__ = "0.1.0"

"""
Credential normalizer — maps type-tagged payloads onto the stored shape.

Payloads are plain mappings keyed by storage column name and may carry fields
for every credential type; only the fields of the tagged type survive. Empty
strings are stored as NULL.

Usage:
    from secretvault.vault.normalizer import CredentialNormalizer

    n = CredentialNormalizer()
    n.normalize("WEB_LOGIN", {"username": "jane", "cvv": "123"})
    # {"username": "jane", "password": None, "card_number": None, ..., "cvv": None}
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import replace
from datetime import date, datetime
from typing import Any

from secretvault.vault.errors import ValidationError
from secretvault.vault.models import (
    CREDENTIAL_CLASSES,
    PAYLOAD_COLUMNS,
    Credential,
    CredentialType,
    credential_to_row,
    payload_fields,
)

logger = logging.getLogger(__name__)

# Card-style expiry: 07/27 or 07/2027
_CARD_EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])\s*/\s*(\d{2}|\d{4})$")


def parse_credential_type(value: Any) -> CredentialType:
    """Return the CredentialType for *value*, or raise ValidationError."""
    if isinstance(value, CredentialType):
        return value
    try:
        return CredentialType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in CredentialType)
        raise ValidationError(
            f"Invalid credentialType {value!r}: must be one of {allowed}"
        ) from None


def parse_expiry_date(value: Any) -> date | None:
    """Parse an expiry date. Absent or empty yields None rather than an error."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"expiryDate must be a string, got {type(value).__name__}")

    text = value.strip()
    if not text:
        return None

    m = _CARD_EXPIRY_RE.match(text)
    if m:
        month, year = int(m.group(1)), int(m.group(2))
        if year < 100:
            year += 2000
        return date(year, month, 1)

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValidationError(f"expiryDate is not a valid date: {text[:40]!r}") from None


def _clean(name: str, value: Any) -> Any:
    if name == "expiry_date":
        return parse_expiry_date(value)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string, got {type(value).__name__}")
    return value or None


class CredentialNormalizer:
    """Sole writer of credential payload fields. Pure, no I/O."""

    def build(self, credential_type: Any, payload: Mapping[str, Any]) -> Credential:
        """Build the tagged credential, dropping fields irrelevant to its type."""
        ct = parse_credential_type(credential_type)
        wanted = payload_fields(ct)
        dropped = [
            k for k, v in payload.items() if k in PAYLOAD_COLUMNS and k not in wanted and v
        ]
        if dropped:
            logger.debug("Ignoring fields not applicable to %s: %s", ct.value, dropped)
        cls = CREDENTIAL_CLASSES[ct]
        return cls(**{name: _clean(name, payload.get(name)) for name in wanted})

    def normalize(self, credential_type: Any, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Return the flat storage record: every payload column, irrelevant ones None."""
        return credential_to_row(self.build(credential_type, payload))

    def apply_update(
        self,
        current: Credential,
        changes: Mapping[str, Any],
        credential_type: Any = None,
    ) -> Credential:
        """Merge a partial update into *current*.

        Keys absent from *changes* are left untouched; a key present with
        None or "" clears that field. A type change rebuilds the credential
        from *changes* alone so nothing from the previous type survives.
        """
        unknown = sorted(set(changes) - set(PAYLOAD_COLUMNS))
        if unknown:
            raise ValidationError(f"Unknown credential fields: {', '.join(unknown)}")

        target = current.type if credential_type is None else parse_credential_type(credential_type)
        if target != current.type:
            return self.build(target, changes)

        wanted = payload_fields(target)
        updates = {k: _clean(k, v) for k, v in changes.items() if k in wanted}
        return replace(current, **updates)

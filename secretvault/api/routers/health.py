"""Health route."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from secretvault.api.deps import get_service
from secretvault.vault.errors import StorageError
from secretvault.vault.service import SecretService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health(service: SecretService = Depends(get_service)):
    """Report storage connectivity. 503 when the repository is unreachable."""
    try:
        storage = service.repository.check_health()
    except StorageError as e:
        logger.warning("Health check failed: %s", e)
        return JSONResponse(
            {"status": "degraded", "services": {"storage": f"error:{e.message}"}},
            status_code=503,
        )
    return {"status": "ok", "services": {"storage": "ok"}, "storage": storage}

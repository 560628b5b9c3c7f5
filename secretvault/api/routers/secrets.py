"""User secret management routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from secretvault.api.deps import get_service, rate_limit
from secretvault.api.models import CreateSecretRequest, UpdateSecretRequest
from secretvault.vault.models import ActorContext, secret_to_dict
from secretvault.vault.service import MAX_LIMIT, MAX_OFFSET, SecretService

router = APIRouter(prefix="/api/v1/user-secrets", tags=["user-secrets"])


@router.get("/")
def api_list_secrets(
    offset: int = Query(0, ge=0, le=MAX_OFFSET),
    limit: int = Query(25, ge=1, le=MAX_LIMIT),
    actor: ActorContext = Depends(rate_limit("read")),
    service: SecretService = Depends(get_service),
):
    page = service.list_secrets(actor, offset=offset, limit=limit)
    return {
        "secrets": [secret_to_dict(s) for s in page.secrets],
        "totalCount": page.total_count,
    }


@router.post("/create")
def api_create_secret(
    body: CreateSecretRequest,
    actor: ActorContext = Depends(rate_limit("read")),
    service: SecretService = Depends(get_service),
):
    secret_id = service.create_secret(actor, body.to_payload())
    return {"message": "Credential created successfully", "secretId": secret_id}


@router.put("/update/{secret_id}")
def api_update_secret(
    secret_id: str,
    body: UpdateSecretRequest,
    actor: ActorContext = Depends(rate_limit("read")),
    service: SecretService = Depends(get_service),
):
    service.update_secret(actor, secret_id, body.to_changes(), credential_type=body.credentialType)
    return {"message": "Credential updated successfully", "updatedSecretId": secret_id}


@router.delete("/{secret_id}")
def api_delete_secret(
    secret_id: uuid.UUID,
    actor: ActorContext = Depends(rate_limit("write")),
    service: SecretService = Depends(get_service),
):
    deleted = service.delete_secret(actor, str(secret_id))
    if deleted is None:
        return JSONResponse({"error": "Secret not found"}, status_code=404)
    return {"message": "Secret soft deleted successfully", "deletedSecret": secret_to_dict(deleted)}

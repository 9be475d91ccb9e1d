from typing import Optional

from fastapi import APIRouter, Depends, Query

from maestro.auth import Principal, require_principal
from maestro.models import WarrantyClaim, WarrantyClaimCreate, WarrantyClaimStatusUpdate
from maestro.routers.http_errors import raise_http_error
from maestro.services.errors import MarketplaceError
from maestro.services.warranty import warranty_service

router = APIRouter(prefix="/warranty-claims", tags=["warranty"])


@router.post("", response_model=WarrantyClaim)
def create_claim(payload: WarrantyClaimCreate, principal: Principal = Depends(require_principal)):
    try:
        return warranty_service.create_claim(
            customer_user_id=principal.user_id,
            job_id=payload.job_id,
            description=payload.description,
            photos=payload.photos,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("", response_model=list[WarrantyClaim])
def list_claims(
    status: Optional[str] = Query(default=None),
    principal: Principal = Depends(require_principal),
):
    try:
        return warranty_service.list_claims(user_id=principal.user_id, status=status)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/{claim_id}", response_model=WarrantyClaim)
def get_claim(claim_id: int, principal: Principal = Depends(require_principal)):
    try:
        return warranty_service.get_claim(user_id=principal.user_id, claim_id=claim_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/{claim_id}/status", response_model=WarrantyClaim)
def update_claim_status(
    claim_id: int,
    payload: WarrantyClaimStatusUpdate,
    principal: Principal = Depends(require_principal),
):
    try:
        return warranty_service.update_claim_status(
            admin_user_id=principal.user_id,
            claim_id=claim_id,
            new_status=payload.status,
            admin_notes=payload.admin_notes,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)

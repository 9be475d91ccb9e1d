from typing import Optional

from fastapi import APIRouter, Depends, Query

from maestro.auth import Principal, require_principal
from maestro.models import (
    Job,
    NearbyPro,
    ProApprovalRequest,
    ProCategoriesRequest,
    ProLocationRequest,
    ProOnlineRequest,
    ProProfile,
    Review,
    ServiceCategory,
    ServiceRequest,
)
from maestro.routers.http_errors import raise_http_error
from maestro.services.directory_store import directory_store
from maestro.services.errors import MarketplaceError
from maestro.services.job_engine import job_engine
from maestro.services.reviews import review_store
from maestro.services.targeting import targeting_service

router = APIRouter(tags=["directory"])


@router.get("/categories", response_model=list[ServiceCategory])
def list_categories():
    return directory_store.list_categories()


@router.get("/pros/me", response_model=ProProfile)
def my_pro_profile(principal: Principal = Depends(require_principal)):
    try:
        return directory_store.get_pro_by_user(principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/pros/online", response_model=ProProfile)
def set_online(payload: ProOnlineRequest, principal: Principal = Depends(require_principal)):
    try:
        return directory_store.set_online(pro_user_id=principal.user_id, is_online=payload.is_online)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/pros/location", response_model=ProProfile)
def update_location(payload: ProLocationRequest, principal: Principal = Depends(require_principal)):
    try:
        return directory_store.update_location(
            pro_user_id=principal.user_id,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/pros/categories", response_model=ProProfile)
def set_categories(payload: ProCategoriesRequest, principal: Principal = Depends(require_principal)):
    try:
        return directory_store.set_categories(pro_user_id=principal.user_id, categories=payload.categories)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/pros/nearby", response_model=list[NearbyPro])
def list_nearby_pros(
    lat: float = Query(...),
    lng: float = Query(...),
    radius_km: Optional[float] = Query(default=None),
    category_id: Optional[int] = Query(default=None),
):
    try:
        return directory_store.list_nearby_pros(
            latitude=lat,
            longitude=lng,
            radius_km=radius_km,
            category_id=category_id,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/pros/opportunities", response_model=list[ServiceRequest])
def list_opportunities(principal: Principal = Depends(require_principal)):
    try:
        return targeting_service.list_opportunities(pro_user_id=principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/pros/jobs", response_model=list[Job])
def list_pro_jobs(principal: Principal = Depends(require_principal)):
    try:
        return job_engine.list_pro_jobs(pro_user_id=principal.user_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/pros/{pro_id}", response_model=ProProfile)
def get_pro(pro_id: int):
    try:
        return directory_store.get_pro(pro_id)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.get("/pros/{pro_id}/reviews", response_model=list[Review])
def list_pro_reviews(pro_id: int):
    try:
        directory_store.get_pro(pro_id)
    except MarketplaceError as exc:
        raise_http_error(exc)
    return review_store.list_pro_reviews(pro_id)


@router.get("/admin/pros", response_model=list[ProProfile])
def admin_list_pros(
    approval_status: Optional[str] = Query(default=None),
    principal: Principal = Depends(require_principal),
):
    try:
        return directory_store.list_pros(admin_user_id=principal.user_id, approval_status=approval_status)
    except MarketplaceError as exc:
        raise_http_error(exc)


@router.post("/admin/pros/{pro_id}/approval", response_model=ProProfile)
def admin_set_approval(
    pro_id: int,
    payload: ProApprovalRequest,
    principal: Principal = Depends(require_principal),
):
    try:
        return directory_store.set_approval_status(
            admin_user_id=principal.user_id,
            pro_id=pro_id,
            status=payload.status,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)

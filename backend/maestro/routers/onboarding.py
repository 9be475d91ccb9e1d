from fastapi import APIRouter

from maestro.auth import create_access_token
from maestro.models import CustomerOnboardingRequest, OnboardingResponse, ProOnboardingRequest
from maestro.routers.http_errors import raise_http_error
from maestro.services.directory_store import directory_store
from maestro.services.errors import MarketplaceError

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@router.post("/customer", response_model=OnboardingResponse)
def onboard_customer(payload: CustomerOnboardingRequest):
    try:
        user, customer = directory_store.create_customer(
            email=payload.email,
            full_name=payload.full_name,
            phone=payload.phone,
            photo_url=payload.photo_url,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)
    token, expires_at = create_access_token(user_id=user.id)
    return OnboardingResponse(
        user_id=user.id,
        profile_id=customer.id,
        role=user.role,
        access_token=token,
        expires_at=expires_at,
    )


@router.post("/pro", response_model=OnboardingResponse)
def onboard_pro(payload: ProOnboardingRequest):
    try:
        user, pro = directory_store.create_pro(
            email=payload.email,
            display_name=payload.display_name,
            phone=payload.phone,
            bio=payload.bio,
            experience_years=payload.experience_years,
            coverage_km=payload.coverage_km,
            categories=payload.categories,
        )
    except MarketplaceError as exc:
        raise_http_error(exc)
    token, expires_at = create_access_token(user_id=user.id)
    return OnboardingResponse(
        user_id=user.id,
        profile_id=pro.id,
        role=user.role,
        access_token=token,
        expires_at=expires_at,
    )

from fastapi import APIRouter, Depends, HTTPException

from maestro.auth import AUTH_DEMO_PASSWORD, Principal, create_access_token, require_principal
from maestro.models import AuthLoginRequest, AuthLoginResponse, AuthMeResponse
from maestro.services.directory_store import directory_store

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    if payload.password != AUTH_DEMO_PASSWORD:
        raise HTTPException(status_code=401, detail={"error": "unauthenticated", "message": "Invalid credentials"})
    user = directory_store.get_user(payload.user_id)
    if not user or user.status != "active":
        raise HTTPException(status_code=401, detail={"error": "unauthenticated", "message": "Invalid credentials"})
    token, expires_at = create_access_token(user_id=user.id)
    return AuthLoginResponse(access_token=token, user_id=user.id, role=user.role, expires_at=expires_at)


@router.get("/me", response_model=AuthMeResponse)
def me(principal: Principal = Depends(require_principal)):
    return AuthMeResponse(user_id=principal.user_id, role=principal.role)

import base64
import hashlib
import hmac
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status

from maestro.services.directory_store import directory_store


def _parse_ttl_hours(raw: str, default: int = 24) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


TOKEN_TTL_HOURS = _parse_ttl_hours(os.getenv("AUTH_TOKEN_TTL_HOURS", "24"))
AUTH_DEMO_PASSWORD = os.getenv("AUTH_DEMO_PASSWORD", "maestro-demo")
_AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me")


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def create_access_token(user_id: int) -> tuple[str, str]:
    expiry = datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
    payload = f"{user_id}|{int(expiry.timestamp())}".encode("utf-8")
    sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    return f"{_b64url(payload)}.{_b64url(sig)}", expiry.isoformat()


def verify_access_token(token: str) -> Optional[int]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        sent_sig = _b64urldecode(sig_part)
    except ValueError:
        return None
    expected_sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    if not hmac.compare_digest(sent_sig, expected_sig):
        return None
    try:
        user_part, expiry_part = payload.decode("utf-8").split("|", 1)
        user_id = int(user_part)
        expiry_ts = int(expiry_part)
    except ValueError:
        return None
    if datetime.now(timezone.utc).timestamp() > expiry_ts:
        return None
    return user_id


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_principal(authorization: Optional[str]) -> Optional[Principal]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    user_id = verify_access_token(token)
    if user_id is None:
        return None
    user = directory_store.get_user(user_id)
    if not user or user.status != "active":
        return None
    return Principal(user_id=user.id, role=user.role)


def require_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    principal = resolve_principal(authorization)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Invalid or missing bearer token"},
        )
    return principal

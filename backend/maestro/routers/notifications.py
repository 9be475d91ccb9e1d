from fastapi import APIRouter, Depends, HTTPException, Query

from maestro.auth import Principal, require_principal
from maestro.models import NotificationList, NotificationRecord
from maestro.services.notification_store import notification_store

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(require_principal),
):
    notification_store.dispatch_pending()
    return NotificationList(
        notifications=notification_store.list_for_user(principal.user_id, unread_only=unread_only, limit=limit),
        unread_count=notification_store.unread_count(principal.user_id),
    )


@router.post("/read-all", response_model=dict)
def mark_all_read(principal: Principal = Depends(require_principal)):
    updated = notification_store.mark_all_read(principal.user_id)
    return {"status": "ok", "updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationRecord)
def mark_notification_read(notification_id: int, principal: Principal = Depends(require_principal)):
    updated = notification_store.mark_read(principal.user_id, notification_id)
    if not updated:
        raise HTTPException(status_code=404, detail={"error": "not_found", "message": "Notification not found"})
    return updated

# campusgrub/routers/notifications.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from campusgrub.core.auth import Identity, require_auth
from campusgrub.database import get_session
from campusgrub.repositories.notification_repo import NotificationRepository
from campusgrub.schemas.notification import NotificationRead
from campusgrub.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

repo = NotificationRepository()
service = NotificationService(repo)


@router.get("/me", response_model=list[NotificationRead])
def list_my_notifications(
    unread_only: bool = True,
    session: Session = Depends(get_session),
    identity: Identity = Depends(require_auth),
    skip: int = 0,
    limit: int = 50,
):
    """
    Notifications addressed to the caller (vendor: new orders,
    student: status updates). Unread only by default.
    """
    return service.list_for_recipient(session, identity.id, unread_only, skip, limit)


@router.patch("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_read(
    notification_id: uuid.UUID,
    session: Session = Depends(get_session),
    identity: Identity = Depends(require_auth),
):
    return service.mark_read(session, identity.id, notification_id)

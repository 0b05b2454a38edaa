# campusgrub/services/notification_service.py
import uuid

from sqlmodel import Session

from campusgrub.core.exceptions import ForbiddenError, OrderNotFoundError
from campusgrub.models.notification import Notification
from campusgrub.repositories.notification_repo import NotificationRepository
from campusgrub.services.order_service import store_errors


class NotificationService:
    """
    Read side of notifications for vendors and students.
    Notifications are only written by OrderService.
    """

    def __init__(self, repo: NotificationRepository):
        self.repo = repo

    def list_for_recipient(
        self,
        session: Session,
        recipient_id: uuid.UUID,
        unread_only: bool = True,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Notification]:
        with store_errors(session, "listing notifications"):
            return self.repo.list_for_recipient(
                session, recipient_id, unread_only, skip, limit
            )

    def mark_read(
        self,
        session: Session,
        recipient_id: uuid.UUID,
        notification_id: uuid.UUID,
    ) -> Notification:
        """
        Mark one of the caller's notifications as read.

        - 404 if it does not exist
        - 403 if it belongs to someone else
        """
        with store_errors(session, "loading notification"):
            notification = self.repo.get_by_id(session, notification_id)
        if not notification:
            raise OrderNotFoundError("Notification not found")
        if notification.recipient_id != recipient_id:
            raise ForbiddenError("This notification is addressed to someone else")
        if notification.is_read:
            return notification

        with store_errors(session, "marking notification read"):
            return self.repo.mark_read(session, notification)

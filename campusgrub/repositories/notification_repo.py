# campusgrub/repositories/notification_repo.py
import uuid

from sqlmodel import Session, select

from campusgrub.models.notification import Notification


class NotificationRepository:

    def get_by_id(
        self, session: Session, notification_id: uuid.UUID
    ) -> Notification | None:
        return session.get(Notification, notification_id)

    def list_for_recipient(
        self,
        session: Session,
        recipient_id: uuid.UUID,
        unread_only: bool = True,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Notification]:
        stmt = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read == False)  # noqa: E712
        stmt = stmt.order_by(Notification.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    # CRUD
    def create(self, session: Session, notification: Notification) -> Notification:
        session.add(notification)
        session.commit()
        session.refresh(notification)
        return notification

    def mark_read(self, session: Session, notification: Notification) -> Notification:
        notification.is_read = True
        session.add(notification)
        session.commit()
        session.refresh(notification)
        return notification

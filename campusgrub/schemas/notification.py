# campusgrub/schemas/notification.py
import uuid
from datetime import datetime
from typing import Any, Literal

from sqlmodel import SQLModel

NotificationType = Literal["new_order", "order_update"]


class NotificationRead(SQLModel):
    """
    Notification as listed to its recipient.
    """

    id: uuid.UUID
    recipient_id: uuid.UUID
    type: NotificationType
    message: str
    data: dict[str, Any]
    is_read: bool
    created_at: datetime

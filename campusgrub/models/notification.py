# campusgrub/models/notification.py
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class Notification(SQLModel, table=True):
    """
    Per-recipient notification written as a side effect of order changes.

    Lifecycle: created -> read (is_read=True) -> no longer listed.
    Never mutated otherwise.
    """

    __tablename__ = "notifications"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # Student or vendor id
    recipient_id: uuid.UUID = Field(index=True)

    # new_order | order_update
    type: str = Field(index=True)

    message: str

    # {order_id, status, items, total_amount}
    data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )

    is_read: bool = Field(default=False, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

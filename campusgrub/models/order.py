# campusgrub/models/order.py
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    A student's order from one vendor's shop.

    Immutable after creation:
      - id, student_id, vendor_id, shop_id, items,
        total_amount, delivery_location, created_at

    Mutable only through OrderService.transition / StaleOrderReaper:
      - status, estimated_delivery_time, updated_at, version
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    # Supabase auth.users ids
    student_id: uuid.UUID = Field(index=True)
    vendor_id: uuid.UUID = Field(index=True)
    shop_id: uuid.UUID = Field(index=True)

    student_name: str = Field(
        description="Student display name at the time of ordering",
    )

    # [{menu_item_id, name, unit_price, quantity}, ...]
    items: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    # Items subtotal + delivery fee
    total_amount: float = Field(
        description="Final amount for this order (including delivery fee)",
    )

    # pending | preparing | prepared | delivering | delivered | cancelled
    status: str = Field(
        default="pending",
        index=True,
        description="Order status lifecycle",
    )

    delivery_location: str = Field(
        description="Free-text delivery location (hostel, block, room)",
    )

    estimated_delivery_time: str | None = Field(
        default=None,
        description="Human-readable delivery estimate, e.g. '30-45 min'",
    )

    # Bumped on every status write; lets subscribers drop stale events
    version: int = Field(default=1)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last status change (UTC)",
    )

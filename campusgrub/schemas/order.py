# campusgrub/schemas/order.py
import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from campusgrub.services.order_status import OrderStatus, normalize_status

OrderListScope = Literal["active", "past", "all"]
VendorListScope = Literal["active", "completed"]


class OrderItemIn(SQLModel):
    """
    One line of the student's cart at checkout.
    """

    model_config = ConfigDict(extra="forbid")

    menu_item_id: str
    name: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(gt=0)

    @field_validator("menu_item_id", "name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class OrderCreate(SQLModel):
    """
    Payload for placing an order.

    Student provides:
      - vendor_id, shop_id
      - items (cart snapshot, at least one)
      - delivery_location
      - student_name (optional, defaults to the email prefix)

    Backend derives:
      - student_id from token
      - status = 'pending'
      - total_amount = items subtotal + delivery fee
    """

    model_config = ConfigDict(extra="forbid")

    vendor_id: uuid.UUID
    shop_id: uuid.UUID
    items: list[OrderItemIn] = Field(min_length=1)
    delivery_location: str
    student_name: str | None = None

    @field_validator("delivery_location")
    @classmethod
    def location_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("student_name")
    @classmethod
    def normalize_student_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderItemRead(SQLModel):
    menu_item_id: str
    name: str
    unit_price: float
    quantity: int


class OrderRead(SQLModel):
    """
    Order snapshot as seen by clients and carried in change events.

    Legacy statuses ('accepted', 'ready') are migrated on validation.
    """

    id: uuid.UUID
    student_id: uuid.UUID
    vendor_id: uuid.UUID
    shop_id: uuid.UUID
    student_name: str
    items: list[OrderItemRead]
    total_amount: float
    status: OrderStatus
    delivery_location: str
    estimated_delivery_time: str | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def migrate_status(cls, v: str) -> str:
        return normalize_status(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        # SQLite drops tzinfo; realtime payloads keep it
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class OrderStatusUpdate(SQLModel):
    """
    Vendor payload to change order status.

    expected_status: the status the vendor last saw; if the stored status
    differs, the update is rejected with 409 instead of being applied.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
    expected_status: OrderStatus | None = None

    @field_validator("status", "expected_status", mode="before")
    @classmethod
    def migrate_status(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return normalize_status(v)


class ReapResult(SQLModel):
    """
    Outcome of one stale-order sweep.
    """

    count: int
    order_ids: list[uuid.UUID]
    cutoff: datetime

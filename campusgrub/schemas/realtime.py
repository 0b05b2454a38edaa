# campusgrub/schemas/realtime.py
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


class OrderScope(SQLModel):
    """
    Row filter of one realtime subscription.

    - order_id                 : one order (student tracking view)
    - vendor_id [+ shop_id]    : one vendor's orders
    - student_id               : one student's orders
    - nothing set              : public community feed

    Comparison is done on string form so rows coming from the hosted
    realtime feed (JSON) match rows published in-process.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    order_id: uuid.UUID | None = None
    vendor_id: uuid.UUID | None = None
    shop_id: uuid.UUID | None = None
    student_id: uuid.UUID | None = None

    @property
    def is_public(self) -> bool:
        return not any(
            (self.order_id, self.vendor_id, self.shop_id, self.student_id)
        )

    def key(self) -> str:
        """
        Stable, human-readable identifier of this scope.

        Examples: "feed", "order=<id>", "vendor=<id>,shop=<id>".
        """
        if self.is_public:
            return "feed"
        parts = []
        for label, value in (
            ("order", self.order_id),
            ("vendor", self.vendor_id),
            ("shop", self.shop_id),
            ("student", self.student_id),
        ):
            if value is not None:
                parts.append(f"{label}={value}")
        return ",".join(parts)

    def matches(self, row: dict[str, Any] | None, partial: bool = False) -> bool:
        """
        partial=True treats a column missing from `row` as unknown rather
        than a mismatch. Hosted DELETE payloads carry only the primary key,
        so those are offered to every scope they cannot rule out.
        """
        if row is None:
            return False
        checks = (
            ("id", self.order_id),
            ("vendor_id", self.vendor_id),
            ("shop_id", self.shop_id),
            ("student_id", self.student_id),
        )
        for column, expected in checks:
            if expected is None:
                continue
            if partial and row.get(column) is None:
                continue
            if _as_str(row.get(column)) != str(expected):
                return False
        return True


class ChangeEvent(SQLModel):
    """
    One row-level change on the orders table.

    INSERT/UPDATE carry the full new row in `record`.
    DELETE carries the identifying columns of the old row in `old_record`.
    """

    type: ChangeType
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None
    commit_timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    @property
    def row(self) -> dict[str, Any] | None:
        """The row used for scope matching."""
        if self.type == "DELETE":
            return self.old_record
        return self.record

    @property
    def order_id(self) -> str | None:
        row = self.row or {}
        return _as_str(row.get("id"))

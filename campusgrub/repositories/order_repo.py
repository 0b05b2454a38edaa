# campusgrub/repositories/order_repo.py
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlmodel import Session, select

from campusgrub.models.order import Order


class OrderRepository:
    """
    Data access layer for orders.

    NOTE:
      - No commits here; the service owns the transaction boundary.
      - Status writes go through `update_if_current` only.
    """

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def list_for_student(
        self,
        session: Session,
        student_id: uuid.UUID,
        statuses: Iterable[str] | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = select(Order).where(Order.student_id == student_id)
        if statuses is not None:
            stmt = stmt.where(Order.status.in_(list(statuses)))
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_for_vendor(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        shop_id: uuid.UUID | None = None,
        statuses: Iterable[str] | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Order]:
        stmt = select(Order).where(Order.vendor_id == vendor_id)
        if shop_id is not None:
            stmt = stmt.where(Order.shop_id == shop_id)
        if statuses is not None:
            stmt = stmt.where(Order.status.in_(list(statuses)))
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = select(Order).order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def list_stale(
        self,
        session: Session,
        statuses: Iterable[str],
        created_before: datetime,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(
                Order.status.in_(list(statuses)),
                Order.created_at < created_before,
            )
            .order_by(Order.created_at)
        )
        return list(session.exec(stmt).all())

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()  # Assign PK
        session.refresh(order)
        return order

    def update_if_current(
        self,
        session: Session,
        order_id: uuid.UUID,
        expected_status: str,
        expected_version: int,
        fields: dict[str, Any],
    ) -> bool:
        """
        Conditional write: apply `fields` and bump `version` only if the row
        still has `expected_status` and `expected_version`.

        Returns:
            True if exactly one row was updated, False if the order changed
            (or vanished) since it was read.

        Loaded Order instances are stale afterwards; commit (which expires
        them) or refresh before reading.
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == expected_status,
                Order.version == expected_version,
            )
            .values(**fields, version=expected_version + 1)
        )
        # Core UPDATE on the session's connection: same transaction as the caller
        result = session.connection().execute(stmt)
        return result.rowcount == 1

    def delete(self, session: Session, order: Order) -> None:
        session.delete(order)
        session.flush()

# campusgrub/services/order_service.py
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from campusgrub.core.auth import Identity
from campusgrub.core.config import get_settings
from campusgrub.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    OrderNotFoundError,
    TransientIOError,
)
from campusgrub.core.realtime import RealtimeHub, get_hub
from campusgrub.models.notification import Notification
from campusgrub.models.order import Order
from campusgrub.repositories.notification_repo import NotificationRepository
from campusgrub.repositories.order_repo import OrderRepository
from campusgrub.schemas.order import OrderCreate, OrderRead
from campusgrub.schemas.realtime import ChangeEvent
from campusgrub.services.order_status import (
    ACTIVE_STATUSES,
    CANCELLED,
    DELIVERED,
    DELIVERING,
    PENDING,
    PREPARED,
    PREPARING,
    TERMINAL_STATUSES,
    ensure_transition,
    next_status,
    normalize_status,
    with_legacy,
)

settings = get_settings()
logger = logging.getLogger(__name__)

# estimated_delivery_time written when an order enters these statuses
ESTIMATE_ON_ENTER: dict[str, str] = {
    PREPARING: "20-30 min",
    DELIVERING: "10-15 min",
    DELIVERED: "Delivered",
    CANCELLED: "Order cancelled",
}

STATUS_MESSAGES: dict[str, str] = {
    PREPARING: "The restaurant is now preparing your food",
    PREPARED: "Your order is ready for delivery",
    DELIVERING: "Your order is on the way!",
    DELIVERED: "Your order has been delivered. Enjoy!",
    CANCELLED: "We apologize, but your order has been cancelled",
}


@contextmanager
def store_errors(session: Session, action: str) -> Iterator[None]:
    """
    Translate database failures into TransientIOError after rolling back.
    """
    try:
        yield
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Order store error while %s: %s", action, e)
        raise TransientIOError(
            f"Order store temporarily unavailable while {action}, please retry"
        ) from e


def order_snapshot(order: Order) -> OrderRead:
    return OrderRead.model_validate(order)


def order_identity_row(order: Order) -> dict[str, str]:
    """
    Columns carried by a DELETE event: enough to route and identify it.
    """
    return {
        "id": str(order.id),
        "student_id": str(order.student_id),
        "vendor_id": str(order.vendor_id),
        "shop_id": str(order.shop_id),
    }


class OrderService:
    """
    Business logic for the order lifecycle.

    Responsibilities:
      - Place orders (status='pending', total incl. delivery fee)
      - Validate and apply vendor status transitions with optimistic
        concurrency (expected status + version)
      - Write best-effort notifications to the counterpart role
      - Publish change events to the realtime hub after every commit
      - Administrative hard delete
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        notification_repo: NotificationRepository,
        hub: RealtimeHub | None = None,
        delivery_fee: float | None = None,
    ):
        self.order_repo = order_repo
        self.notification_repo = notification_repo
        self.hub = hub if hub is not None else get_hub()
        self.delivery_fee = (
            settings.DELIVERY_FEE if delivery_fee is None else delivery_fee
        )

    # -------- Student operations --------

    def place_order(
        self,
        session: Session,
        student: Identity,
        payload: OrderCreate,
    ) -> OrderRead:
        """
        Create a 'pending' order and notify the vendor.

        Steps:
          1. Compute total = sum(unit_price * quantity) + delivery fee.
          2. Insert the Order row and commit.
          3. Insert a 'new_order' notification for the vendor (best-effort).
          4. Publish an INSERT change event.
        """
        subtotal = 0.0
        for item in payload.items:
            subtotal += item.unit_price * item.quantity
        total_amount = round(subtotal + self.delivery_fee, 2)

        order = Order(
            student_id=student.id,
            vendor_id=payload.vendor_id,
            shop_id=payload.shop_id,
            student_name=payload.student_name or student.name,
            items=[item.model_dump() for item in payload.items],
            total_amount=total_amount,
            status=PENDING,
            delivery_location=payload.delivery_location,
            estimated_delivery_time=settings.DEFAULT_ESTIMATED_DELIVERY_TIME,
        )

        with store_errors(session, "placing order"):
            order = self.order_repo.create_order(session, order)
            session.commit()
            session.refresh(order)

        snapshot = order_snapshot(order)
        logger.info(
            "Order %s placed by student %s for vendor %s (total %.2f)",
            order.id,
            order.student_id,
            order.vendor_id,
            order.total_amount,
        )

        self._notify(
            session,
            recipient_id=order.vendor_id,
            type="new_order",
            message=f"New order received from {order.student_name}",
            snapshot=snapshot,
        )
        self.hub.publish(
            ChangeEvent(type="INSERT", record=snapshot.model_dump(mode="json"))
        )
        return snapshot

    def list_student_orders(
        self,
        session: Session,
        student_id: uuid.UUID,
        scope: str = "all",
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        """
        scope: active (not delivered/cancelled) | past | all
        """
        statuses = {
            "active": with_legacy(ACTIVE_STATUSES),
            "past": TERMINAL_STATUSES,
        }.get(scope)
        with store_errors(session, "listing student orders"):
            orders = self.order_repo.list_for_student(
                session, student_id, statuses, skip, limit
            )
        return [order_snapshot(o) for o in orders]

    # -------- Vendor operations --------

    def list_vendor_orders(
        self,
        session: Session,
        vendor_id: uuid.UUID,
        shop_id: uuid.UUID | None = None,
        scope: str = "active",
        skip: int = 0,
        limit: int = 100,
    ) -> list[OrderRead]:
        """
        scope: active (vendor dashboard) | completed
        """
        statuses = (
            TERMINAL_STATUSES if scope == "completed" else with_legacy(ACTIVE_STATUSES)
        )
        with store_errors(session, "listing vendor orders"):
            orders = self.order_repo.list_for_vendor(
                session, vendor_id, shop_id, statuses, skip, limit
            )
        return [order_snapshot(o) for o in orders]

    def transition(
        self,
        session: Session,
        order_id: uuid.UUID,
        requested_status: str,
        vendor_id: uuid.UUID,
        expected_status: str | None = None,
    ) -> OrderRead:
        """
        Move one order along a single edge of the state machine.

        Checks, in order:
          - 404 NotFound          : no such order
          - 403 Forbidden         : vendor_id is not the order's vendor
          - 409 Conflict          : expected_status given and stale
          - 400 InvalidTransition : requested is not a direct successor

        The write is conditional on the status and version read here, so
        of two racing callers only the first wins; the other gets 409.
        """
        try:
            requested = normalize_status(requested_status)
            expected = (
                None if expected_status is None else normalize_status(expected_status)
            )
        except ValueError as e:
            raise InvalidTransitionError(str(e)) from e

        order = self._get_order_or_404(session, order_id)

        if order.vendor_id != vendor_id:
            raise ForbiddenError(
                "Only the vendor who received this order can update it",
                {"order_id": str(order_id)},
            )

        current = normalize_status(order.status)
        if expected is not None and expected != current:
            raise ConflictError(
                f"order is now {current}, refresh before updating",
                {"expected_status": expected_status, "current_status": current},
            )

        ensure_transition(current, requested)

        fields = {"status": requested, "updated_at": datetime.now(timezone.utc)}
        if requested in ESTIMATE_ON_ENTER:
            fields["estimated_delivery_time"] = ESTIMATE_ON_ENTER[requested]

        with store_errors(session, "updating order status"):
            applied = self.order_repo.update_if_current(
                session, order.id, order.status, order.version, fields
            )
            if applied:
                session.commit()
            else:
                session.rollback()

        if not applied:
            logger.info(
                "Conflict on order %s: %s -> %s lost the race",
                order_id,
                current,
                requested,
            )
            raise ConflictError(
                "order was updated by someone else, refresh before updating",
                {"order_id": str(order_id), "expected_status": current},
            )

        with store_errors(session, "reading updated order"):
            session.refresh(order)
        snapshot = order_snapshot(order)
        logger.info("Order %s: %s -> %s", order_id, current, requested)

        self._notify(
            session,
            recipient_id=order.student_id,
            type="order_update",
            message=STATUS_MESSAGES.get(
                requested, f"Your order status has been updated to {requested}"
            ),
            snapshot=snapshot,
        )
        self.hub.publish(
            ChangeEvent(
                type="UPDATE",
                record=snapshot.model_dump(mode="json"),
                old_record={"id": str(order.id), "status": current},
            )
        )
        return snapshot

    def advance(
        self,
        session: Session,
        order_id: uuid.UUID,
        vendor_id: uuid.UUID,
    ) -> OrderRead:
        """
        "Mark as next": transition to next_status(current).
        """
        order = self._get_order_or_404(session, order_id)
        current = normalize_status(order.status)
        return self.transition(
            session,
            order_id,
            next_status(current),
            vendor_id,
            expected_status=current,
        )

    # -------- Shared reads --------

    def get_order(
        self,
        session: Session,
        identity: Identity,
        order_id: uuid.UUID,
    ) -> OrderRead:
        """
        Visible to the owning student, the owning vendor and admins.
        """
        order = self._get_order_or_404(session, order_id)
        if identity.role != "admin" and identity.id not in (
            order.student_id,
            order.vendor_id,
        ):
            raise ForbiddenError("You do not have access to this order")
        return order_snapshot(order)

    def list_feed(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        """
        Public community feed: every order, newest first.
        """
        with store_errors(session, "listing community feed"):
            orders = self.order_repo.list_all(session, skip, limit)
        return [order_snapshot(o) for o in orders]

    # -------- Admin operations --------

    def delete_order(self, session: Session, order_id: uuid.UUID) -> None:
        """
        Unconditional hard delete; bypasses the state machine.
        """
        order = self._get_order_or_404(session, order_id)
        old_row = order_identity_row(order)

        with store_errors(session, "deleting order"):
            self.order_repo.delete(session, order)
            session.commit()

        logger.warning("Order %s deleted by administrator", order_id)
        self.hub.publish(ChangeEvent(type="DELETE", old_record=old_row))

    # -------- Helpers --------

    def _get_order_or_404(self, session: Session, order_id: uuid.UUID) -> Order:
        with store_errors(session, "loading order"):
            order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise OrderNotFoundError(
                "Order not found", {"order_id": str(order_id)}
            )
        return order

    def _notify(
        self,
        session: Session,
        recipient_id: uuid.UUID,
        type: str,
        message: str,
        snapshot: OrderRead,
    ) -> None:
        """
        Best-effort: the order write already succeeded, so a failure here is
        logged and swallowed.
        """
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            message=message,
            data={
                "order_id": str(snapshot.id),
                "status": snapshot.status,
                "items": [item.model_dump() for item in snapshot.items],
                "total_amount": snapshot.total_amount,
            },
        )
        try:
            self.notification_repo.create(session, notification)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(
                "Notification %s for order %s not written: %s",
                type,
                snapshot.id,
                e,
            )

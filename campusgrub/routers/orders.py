# campusgrub/routers/orders.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from campusgrub.core.auth import Identity, require_auth, require_student, require_vendor
from campusgrub.database import get_session
from campusgrub.repositories.notification_repo import NotificationRepository
from campusgrub.repositories.order_repo import OrderRepository
from campusgrub.schemas.order import (
    OrderCreate,
    OrderListScope,
    OrderRead,
    OrderStatusUpdate,
    VendorListScope,
)
from campusgrub.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

order_repo = OrderRepository()
notification_repo = NotificationRepository()
service = OrderService(order_repo, notification_repo)


# -------- Student endpoints --------


@router.post(
    "",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
)
def place_order(
    payload: OrderCreate,
    session: Session = Depends(get_session),
    student: Identity = Depends(require_student),
):
    """
    Place an order from the student's cart.

    Auth:
      - Only role='student' can order.
    """
    return service.place_order(session, student, payload)


@router.get(
    "/me",
    response_model=list[OrderRead],
)
def list_my_orders(
    scope: OrderListScope = "all",
    session: Session = Depends(get_session),
    student: Identity = Depends(require_student),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated student's orders.

    scope: active | past | all
    """
    return service.list_student_orders(session, student.id, scope, skip, limit)


# -------- Vendor endpoints --------


@router.get(
    "/vendor",
    response_model=list[OrderRead],
)
def list_vendor_orders(
    shop_id: uuid.UUID | None = None,
    scope: VendorListScope = "active",
    session: Session = Depends(get_session),
    vendor: Identity = Depends(require_vendor),
    skip: int = 0,
    limit: int = 100,
):
    """
    Vendor dashboard: active (default) or completed orders, optionally
    for a single shop.
    """
    return service.list_vendor_orders(session, vendor.id, shop_id, scope, skip, limit)


@router.patch(
    "/{order_id}/status",
    response_model=OrderRead,
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    session: Session = Depends(get_session),
    vendor: Identity = Depends(require_vendor),
):
    """
    Move an order to an adjacent status.

      pending    -> preparing, cancelled

      preparing  -> prepared, cancelled

      prepared   -> delivering, cancelled

      delivering -> delivered

      delivered / cancelled -> (no change)

    Send `expected_status` to get 409 instead of a silent skip when
    another session already moved the order.
    """
    return service.transition(
        session,
        order_id,
        payload.status,
        vendor.id,
        expected_status=payload.expected_status,
    )


@router.post(
    "/{order_id}/advance",
    response_model=OrderRead,
)
def advance_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    vendor: Identity = Depends(require_vendor),
):
    """
    "Mark as next" action: move the order to its next status.
    """
    return service.advance(session, order_id, vendor.id)


# -------- Shared endpoints --------


@router.get(
    "/feed",
    response_model=list[OrderRead],
)
def community_feed(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
):
    """
    Public community feed (no auth required).
    """
    return service.list_feed(session, skip, limit)


@router.get(
    "/{order_id}",
    response_model=OrderRead,
)
def get_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    identity: Identity = Depends(require_auth),
):
    """
    Get a single order. Only the owning student or vendor (or an admin).
    """
    return service.get_order(session, identity, order_id)

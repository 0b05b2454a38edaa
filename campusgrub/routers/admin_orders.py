# campusgrub/routers/admin_orders.py
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from campusgrub.core.auth import require_admin
from campusgrub.database import get_session
from campusgrub.repositories.order_repo import OrderRepository
from campusgrub.schemas.order import ReapResult
from campusgrub.services.reaper_service import StaleOrderReaper
from campusgrub.routers.orders import service as order_service

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])

reaper = StaleOrderReaper(OrderRepository())


@router.post(
    "/reap",
    response_model=ReapResult,
    dependencies=[Depends(require_admin)],
)
def reap_stale_orders(
    threshold_hours: float | None = Query(default=None, ge=0),
    session: Session = Depends(get_session),
):
    """
    Force orders stuck in pending/preparing/prepared longer than
    `threshold_hours` (default STALE_ORDER_THRESHOLD_HOURS) to delivered.

    threshold_hours=0 clears every such order.

    Only accessible to users with role='admin'.
    """
    return reaper.reap(session, threshold_hours)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Hard delete, bypassing the status machine (admin only).
    """
    order_service.delete_order(session, order_id)

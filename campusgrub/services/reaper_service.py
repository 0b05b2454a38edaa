# campusgrub/services/reaper_service.py
import logging
from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from campusgrub.core.config import get_settings
from campusgrub.core.realtime import RealtimeHub, get_hub
from campusgrub.repositories.order_repo import OrderRepository
from campusgrub.schemas.order import ReapResult
from campusgrub.schemas.realtime import ChangeEvent
from campusgrub.services.order_service import (
    ESTIMATE_ON_ENTER,
    order_snapshot,
    store_errors,
)
from campusgrub.services.order_status import (
    DELIVERED,
    STALE_CANDIDATE_STATUSES,
    with_legacy,
)

settings = get_settings()
logger = logging.getLogger(__name__)


class StaleOrderReaper:
    """
    Administrative sweep forcing abandoned orders to 'delivered'.

    Rule:
      status IN (pending, preparing, prepared)
      AND created_at < now - threshold
        -> status = 'delivered'

    Bypasses the vendor transition guard on purpose; only the admin
    endpoint and reap_stale_orders.py call it. Each row is written with the
    same status+version condition as a normal transition, so a vendor who
    moves an order at the same moment wins and the row is skipped.
    Running it twice in a row reaps nothing the second time.
    """

    def __init__(self, order_repo: OrderRepository, hub: RealtimeHub | None = None):
        self.order_repo = order_repo
        self.hub = hub if hub is not None else get_hub()

    def reap(
        self,
        session: Session,
        threshold_hours: float | None = None,
        now: datetime | None = None,
    ) -> ReapResult:
        if threshold_hours is None:
            threshold_hours = settings.STALE_ORDER_THRESHOLD_HOURS
        if threshold_hours < 0:
            raise ValueError("threshold_hours must be >= 0")

        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=threshold_hours)
        logger.info("Reaping orders created before %s", cutoff.isoformat())

        fields = {
            "status": DELIVERED,
            "updated_at": now,
            "estimated_delivery_time": ESTIMATE_ON_ENTER[DELIVERED],
        }

        with store_errors(session, "reaping stale orders"):
            candidates = self.order_repo.list_stale(
                session, with_legacy(STALE_CANDIDATE_STATUSES), cutoff
            )
            reaped = [
                order
                for order in candidates
                if self.order_repo.update_if_current(
                    session, order.id, order.status, order.version, fields
                )
            ]
            session.commit()
            for order in reaped:
                session.refresh(order)

        snapshots = [order_snapshot(order) for order in reaped]
        for snapshot in snapshots:
            self.hub.publish(
                ChangeEvent(type="UPDATE", record=snapshot.model_dump(mode="json"))
            )

        skipped = len(candidates) - len(reaped)
        logger.info(
            "Reaped %d stale orders (%d skipped: changed concurrently)",
            len(reaped),
            skipped,
        )
        return ReapResult(
            count=len(reaped),
            order_ids=[s.id for s in snapshots],
            cutoff=cutoff,
        )

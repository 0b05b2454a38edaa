# campusgrub/services/feed_service.py
import uuid
from collections.abc import Callable

from sqlmodel import Session

from campusgrub.core.realtime import RealtimeHub
from campusgrub.schemas.order import OrderRead
from campusgrub.schemas.realtime import OrderScope
from campusgrub.services.order_service import OrderService, order_snapshot
from campusgrub.services.order_views import (
    OrderCallback,
    OrderPredicate,
    OrderViewController,
    SnapshotCallback,
    any_order,
    is_active,
    is_completed,
)

SessionFactory = Callable[[], Session]


class FeedService:
    """
    Builds started OrderViewControllers for each UI surface.

    Every controller gets its own subscription and its own fetch, run in a
    short-lived Session from `session_factory`. Callers own the returned
    controller and must close() it.
    """

    def __init__(
        self,
        order_service: OrderService,
        session_factory: SessionFactory,
        hub: RealtimeHub | None = None,
    ):
        self.order_service = order_service
        self.session_factory = session_factory
        self.hub = hub if hub is not None else order_service.hub

    def subscribe_order(
        self,
        order_id: uuid.UUID,
        on_change: SnapshotCallback | None = None,
    ) -> OrderViewController:
        """
        Student tracking view: a list of at most one order.
        """

        def fetch(session: Session) -> list[OrderRead]:
            order = self.order_service.order_repo.get_by_id(session, order_id)
            return [order_snapshot(order)] if order else []

        return self._start(
            OrderScope(order_id=order_id), fetch, any_order, on_change=on_change
        )

    def subscribe_vendor_active_orders(
        self,
        vendor_id: uuid.UUID,
        shop_id: uuid.UUID | None = None,
        on_change: SnapshotCallback | None = None,
        on_left_active_set: OrderCallback | None = None,
        on_new_order: OrderCallback | None = None,
    ) -> OrderViewController:
        def fetch(session: Session) -> list[OrderRead]:
            return self.order_service.list_vendor_orders(
                session, vendor_id, shop_id, scope="active"
            )

        return self._start(
            OrderScope(vendor_id=vendor_id, shop_id=shop_id),
            fetch,
            is_active,
            on_change=on_change,
            on_left_active_set=on_left_active_set,
            on_new_order=on_new_order,
        )

    def subscribe_vendor_completed_orders(
        self,
        vendor_id: uuid.UUID,
        shop_id: uuid.UUID | None = None,
        on_change: SnapshotCallback | None = None,
    ) -> OrderViewController:
        def fetch(session: Session) -> list[OrderRead]:
            return self.order_service.list_vendor_orders(
                session, vendor_id, shop_id, scope="completed"
            )

        return self._start(
            OrderScope(vendor_id=vendor_id, shop_id=shop_id),
            fetch,
            is_completed,
            on_change=on_change,
        )

    def subscribe_student_orders(
        self,
        student_id: uuid.UUID,
        active: bool = True,
        on_change: SnapshotCallback | None = None,
        on_left_active_set: OrderCallback | None = None,
    ) -> OrderViewController:
        scope = "active" if active else "past"

        def fetch(session: Session) -> list[OrderRead]:
            return self.order_service.list_student_orders(
                session, student_id, scope=scope
            )

        return self._start(
            OrderScope(student_id=student_id),
            fetch,
            is_active if active else is_completed,
            on_change=on_change,
            on_left_active_set=on_left_active_set,
        )

    def subscribe_public_feed(
        self,
        on_change: SnapshotCallback | None = None,
        on_new_order: OrderCallback | None = None,
    ) -> OrderViewController:
        """
        Community feed: every order, unscoped.
        """

        def fetch(session: Session) -> list[OrderRead]:
            return self.order_service.list_feed(session)

        return self._start(
            OrderScope(), fetch, any_order, on_change=on_change, on_new_order=on_new_order
        )

    # -------- Helpers --------

    def _start(
        self,
        scope: OrderScope,
        query: Callable[[Session], list[OrderRead]],
        predicate: OrderPredicate,
        **callbacks,
    ) -> OrderViewController:
        def fetch() -> list[OrderRead]:
            with self.session_factory() as session:
                return query(session)

        controller = OrderViewController(
            self.hub, scope, fetch, predicate, **callbacks
        )
        try:
            return controller.start()
        except Exception:
            controller.close()
            raise

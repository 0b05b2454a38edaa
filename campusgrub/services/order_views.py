# campusgrub/services/order_views.py
"""
Materialized, self-reconciling order lists for one UI surface.

A controller holds the orders matching (scope, predicate), seeded by one
fetch and kept fresh by realtime change events. Invariants:
  - never two entries with the same id
  - every entry satisfies the predicate
  - applying the same event twice is the same as applying it once
  - events older (by version) than what the list already saw are ignored
"""

import logging
import sys
import threading
from collections.abc import Callable

from pydantic import ValidationError

from campusgrub.core.exceptions import SubscriptionError
from campusgrub.core.realtime import RealtimeHub, Subscription
from campusgrub.schemas.order import OrderRead
from campusgrub.schemas.realtime import ChangeEvent, OrderScope
from campusgrub.services.order_status import ACTIVE_STATUSES, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

OrderPredicate = Callable[[OrderRead], bool]
Fetcher = Callable[[], list[OrderRead]]
SnapshotCallback = Callable[[list[OrderRead]], None]
OrderCallback = Callable[[OrderRead], None]

# Version recorded for deleted ids: no later event can resurrect them
_DELETED = sys.maxsize


def any_order(order: OrderRead) -> bool:
    return True


def is_active(order: OrderRead) -> bool:
    return order.status in ACTIVE_STATUSES


def is_completed(order: OrderRead) -> bool:
    return order.status in TERMINAL_STATUSES


class OrderViewController:
    """
    Lifecycle:
        view = OrderViewController(hub, scope, fetch, is_active).start()
        ...
        view.close()          # or: with view: ...

    Callbacks (all optional, called outside the controller lock):
      - on_change(snapshot)          after any change to the list
      - on_left_active_set(order)    once, when a listed order stops matching
      - on_new_order(order)          one-shot alert for INSERT events
    """

    def __init__(
        self,
        hub: RealtimeHub,
        scope: OrderScope,
        fetch: Fetcher,
        predicate: OrderPredicate = any_order,
        *,
        on_change: SnapshotCallback | None = None,
        on_left_active_set: OrderCallback | None = None,
        on_new_order: OrderCallback | None = None,
    ):
        self.hub = hub
        self.scope = scope
        self.fetch = fetch
        self.predicate = predicate

        self.on_change = on_change
        self.on_left_active_set = on_left_active_set
        self.on_new_order = on_new_order

        self.live = False
        self.last_error: Exception | None = None

        self._lock = threading.RLock()
        self._orders: list[OrderRead] = []
        self._versions: dict[str, int] = {}
        # order id -> last authoritative snapshot, while a tentative status is shown
        self._tentative: dict[str, OrderRead] = {}
        # order id -> newest event state seen while a fetch is in flight (None = deleted)
        self._touched: dict[str, OrderRead | None] | None = None
        self._subscription: Subscription | None = None

    # -------- Lifecycle --------

    def start(self) -> "OrderViewController":
        """
        Subscribe first, then fetch, so nothing committed in between is lost.
        """
        self._subscribe()
        self.refresh()
        return self

    def resubscribe(self) -> list[OrderRead]:
        """
        Recover after a dropped connection: the hub does not replay missed
        events, so re-fetch after subscribing again.
        """
        self._unsubscribe()
        self._subscribe()
        return self.refresh()

    def close(self) -> None:
        self._unsubscribe()

    def __enter__(self) -> "OrderViewController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _subscribe(self) -> None:
        try:
            self._subscription = self.hub.subscribe(self.scope, self.apply)
        except SubscriptionError as e:
            self._subscription = None
            self.live = False
            self.last_error = e
            logger.warning(
                "Live updates unavailable for %s, serving last snapshot: %s",
                self.scope.key(),
                e,
            )
            return
        self.live = True
        self.last_error = None

    def _unsubscribe(self) -> None:
        subscription, self._subscription = self._subscription, None
        self.live = False
        if subscription is not None:
            subscription.unsubscribe()

    # -------- Reads --------

    def snapshot(self) -> list[OrderRead]:
        with self._lock:
            return list(self._orders)

    def get(self, order_id) -> OrderRead | None:
        with self._lock:
            idx = self._index_of(str(order_id))
            return self._orders[idx] if idx is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    # -------- Initial load / manual refresh --------

    def refresh(self) -> list[OrderRead]:
        """
        Re-fetch and merge with events received while the fetch ran.

        Raises whatever `fetch` raises (e.g. TransientIOError); the current
        snapshot is kept in that case.
        """
        with self._lock:
            self._touched = {}
        try:
            rows = self.fetch()
        except Exception:
            with self._lock:
                self._touched = None
            raise

        with self._lock:
            touched, self._touched = self._touched or {}, None
            self._load(rows, touched)
            snapshot = list(self._orders)

        self._emit_change(snapshot)
        return snapshot

    def _load(self, rows: list[OrderRead], touched: dict[str, OrderRead | None]) -> None:
        merged: dict[str, OrderRead] = {}
        for row in rows:
            oid = str(row.id)
            if oid in merged:
                continue
            merged[oid] = row

        for oid, newer in touched.items():
            fetched = merged.get(oid)
            if newer is None:
                merged.pop(oid, None)
            elif fetched is None or newer.version > fetched.version:
                merged[oid] = newer

        self._versions = {
            oid: version for oid, version in self._versions.items()
            if version == _DELETED
        }
        for oid, row in merged.items():
            self._versions[oid] = max(row.version, self._versions.get(oid, 0))

        self._orders = sorted(
            (
                row for oid, row in merged.items()
                if self._versions[oid] != _DELETED and self.predicate(row)
            ),
            key=lambda o: o.created_at,
            reverse=True,
        )
        self._tentative.clear()

    # -------- Realtime reconciliation --------

    def apply(self, event: ChangeEvent) -> None:
        """
        Reconcile one change event into the list. Idempotent.
        """
        inserted: OrderRead | None = None
        left: OrderRead | None = None
        added = False

        with self._lock:
            if event.type == "DELETE":
                changed = self._apply_delete(event)
            else:
                try:
                    row = OrderRead.model_validate(event.record or {})
                except ValidationError as e:
                    logger.warning("Dropping malformed %s event: %s", event.type, e)
                    return
                changed, left, added = self._apply_upsert(row)
                if added and event.type == "INSERT":
                    inserted = row
            snapshot = list(self._orders) if changed else None

        if left is not None and self.on_left_active_set:
            self.on_left_active_set(left)
        if inserted is not None and self.on_new_order:
            self.on_new_order(inserted)
        if snapshot is not None:
            self._emit_change(snapshot)

    def _apply_delete(self, event: ChangeEvent) -> bool:
        oid = event.order_id
        if oid is None:
            return False
        self._versions[oid] = _DELETED
        self._tentative.pop(oid, None)
        if self._touched is not None:
            self._touched[oid] = None
        idx = self._index_of(oid)
        if idx is None:
            return False
        del self._orders[idx]
        return True

    def _apply_upsert(self, row: OrderRead) -> tuple[bool, OrderRead | None, bool]:
        """
        Returns (list changed, order that left the set or None, id newly added).
        """
        oid = str(row.id)
        seen = self._versions.get(oid, 0)
        if row.version < seen:
            return False, None, False

        base = self._tentative.get(oid)
        if base is not None:
            if row.version <= base.version:
                # Replay of the state the tentative change was made on
                return False, None, False
            del self._tentative[oid]

        self._versions[oid] = row.version
        if self._touched is not None:
            self._touched[oid] = row

        idx = self._index_of(oid)
        if idx is not None:
            if not self.predicate(row):
                del self._orders[idx]
                return True, row, False
            if self._orders[idx] == row:
                return False, None, False
            self._orders[idx] = row
            return True, None, False

        if not self.predicate(row):
            return False, None, False
        self._insert_sorted(row)
        return True, None, True

    # -------- Tentative (optimistic) updates --------

    def apply_tentative(self, order_id, status: str) -> OrderRead | None:
        """
        Show `status` locally before the server confirms it.

        The next authoritative event for this order replaces it;
        rollback_tentative() restores the last authoritative snapshot.
        """
        oid = str(order_id)
        with self._lock:
            idx = self._index_of(oid)
            if idx is None:
                return None
            current = self._orders[idx]
            self._tentative.setdefault(oid, current)
            speculative = current.model_copy(update={"status": status})
            self._orders[idx] = speculative
            snapshot = list(self._orders)
        self._emit_change(snapshot)
        return speculative

    def is_tentative(self, order_id) -> bool:
        with self._lock:
            return str(order_id) in self._tentative

    def rollback_tentative(self, order_id) -> None:
        oid = str(order_id)
        with self._lock:
            base = self._tentative.pop(oid, None)
            if base is None:
                return
            idx = self._index_of(oid)
            if idx is not None:
                self._orders[idx] = base
            snapshot = list(self._orders)
        self._emit_change(snapshot)

    def optimistic_transition(
        self,
        order_id,
        status: str,
        perform: Callable[[], OrderRead],
    ) -> OrderRead:
        """
        Apply `status` tentatively, run `perform` (the real transition),
        then reconcile with its result or roll back if it raises.
        """
        self.apply_tentative(order_id, status)
        try:
            confirmed = perform()
        except Exception:
            self.rollback_tentative(order_id)
            raise
        self.apply(ChangeEvent(type="UPDATE", record=confirmed.model_dump(mode="json")))
        return confirmed

    # -------- Helpers --------

    def _index_of(self, oid: str) -> int | None:
        for idx, order in enumerate(self._orders):
            if str(order.id) == oid:
                return idx
        return None

    def _insert_sorted(self, row: OrderRead) -> None:
        # Newest first; a fresh INSERT lands at the head
        for idx, order in enumerate(self._orders):
            if order.created_at <= row.created_at:
                self._orders.insert(idx, row)
                return
        self._orders.append(row)

    def _emit_change(self, snapshot: list[OrderRead]) -> None:
        if self.on_change:
            self.on_change(snapshot)

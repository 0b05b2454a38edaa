# campusgrub/core/realtime.py
"""
In-process realtime fan-out for order change events.

Every subscription gets its own channel name, generated per `subscribe`
call, so two views subscribed to the same scope (two tabs, a remount)
never share or clobber each other's channel.

Delivery guarantees:
  - every active subscription whose scope matches the changed row
    receives the event; a DELETE missing scope columns goes to every
    scope it cannot rule out
  - one delivery lock for the whole hub: events reach each subscriber in
    publication order, which is commit order per order id
  - no replay: subscribers re-fetch after (re)subscribing
"""

import logging
import secrets
import threading
from collections.abc import Callable
from functools import lru_cache

from campusgrub.core.exceptions import SubscriptionError
from campusgrub.schemas.realtime import ChangeEvent, OrderScope

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


def unique_channel_name(scope_key: str) -> str:
    """
    Build a channel name that is unique per subscription call.

    Example: "orders:vendor=<uuid>:3f9a1c0e7b2d"
    """
    return f"orders:{scope_key}:{secrets.token_hex(6)}"


class Subscription:
    """
    Handle returned by RealtimeHub.subscribe.

    Use as a context manager or call `unsubscribe()` on teardown.
    Unsubscribing is idempotent and safe during delivery.
    """

    def __init__(
        self,
        hub: "RealtimeHub",
        channel: str,
        scope: OrderScope,
        callback: ChangeCallback,
    ):
        self.hub = hub
        self.channel = channel
        self.scope = scope
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        self.hub.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.channel} {state}>"


class RealtimeHub:
    """
    Registry of live subscriptions keyed by channel name.
    """

    def __init__(self):
        self._subscriptions: dict[str, Subscription] = {}
        self._registry_lock = threading.Lock()
        self._delivery_lock = threading.RLock()
        self._closed = False

    # -------- Subscription lifecycle --------

    def subscribe(self, scope: OrderScope, callback: ChangeCallback) -> Subscription:
        """
        Raises:
            SubscriptionError: if the hub has been closed (app shutting down).
        """
        with self._registry_lock:
            if self._closed:
                raise SubscriptionError(
                    "Realtime hub is closed", {"scope": scope.key()}
                )
            channel = unique_channel_name(scope.key())
            while channel in self._subscriptions:
                channel = unique_channel_name(scope.key())
            subscription = Subscription(self, channel, scope, callback)
            self._subscriptions[channel] = subscription

        logger.debug("Subscribed %s", channel)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """
        Release a subscription. Never raises.
        """
        subscription.active = False
        with self._registry_lock:
            removed = self._subscriptions.pop(subscription.channel, None)
        if removed is not None:
            logger.debug("Unsubscribed %s", subscription.channel)

    def subscriptions(self, scope: OrderScope | None = None) -> list[Subscription]:
        with self._registry_lock:
            subs = list(self._subscriptions.values())
        if scope is None:
            return subs
        return [s for s in subs if s.scope == scope]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._subscriptions)

    # -------- Delivery --------

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver `event` to every matching subscription.

        Returns:
            Number of subscriptions the event was delivered to.
        """
        row = event.row
        # DELETE may arrive with only the id; views ignore unknown ids
        partial = event.type == "DELETE"
        delivered = 0

        with self._delivery_lock:
            with self._registry_lock:
                targets = [
                    s
                    for s in self._subscriptions.values()
                    if s.scope.matches(row, partial)
                ]

            for subscription in targets:
                # May have been closed by an earlier callback in this loop
                if not subscription.active:
                    continue
                try:
                    subscription.callback(event)
                    delivered += 1
                except Exception:
                    logger.exception(
                        "Realtime callback failed on %s for %s order %s",
                        subscription.channel,
                        event.type,
                        event.order_id,
                    )

        return delivered

    def close(self) -> None:
        """
        Drop every subscription and refuse new ones.
        """
        with self._registry_lock:
            self._closed = True
            subs = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subs:
            subscription.active = False


@lru_cache
def get_hub() -> RealtimeHub:
    """
    Process-wide hub shared by services, routers and the Supabase bridge.
    """
    return RealtimeHub()

# campusgrub/core/realtime_bridge.py
"""
Forward Supabase `postgres_changes` on public.orders into the local hub.

Without the bridge only writes made by this process reach subscribers.
With it, writes from edge functions or the SQL console fan out as well.
An event can then arrive twice (local publish + bridge); view controllers
reconcile by id and version, so duplicates are harmless.
"""

import logging
from datetime import datetime
from typing import Any

from supabase import AsyncClient

from campusgrub.core.realtime import RealtimeHub, unique_channel_name
from campusgrub.core.supabase_client import supabase_realtime
from campusgrub.schemas.realtime import ChangeEvent

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"


def change_event_from_payload(payload: dict[str, Any]) -> ChangeEvent | None:
    """
    Convert a Supabase realtime payload to a ChangeEvent.

    Accepts both shapes seen from the realtime server:
      - {"data": {"type", "record", "old_record", "commit_timestamp", ...}, "ids": [...]}
      - {"eventType", "new", "old", "commit_timestamp", ...} (JS client shape)

    Returns None for payloads that are not row changes.
    """
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        return None

    change_type = str(data.get("type") or data.get("eventType") or "").upper()
    if change_type not in ("INSERT", "UPDATE", "DELETE"):
        return None

    record = data.get("record") if "record" in data else data.get("new")
    old_record = data.get("old_record") if "old_record" in data else data.get("old")

    fields: dict[str, Any] = {
        "type": change_type,
        "record": record or None,
        "old_record": old_record or None,
    }
    commit_ts = data.get("commit_timestamp")
    if commit_ts:
        try:
            fields["commit_timestamp"] = datetime.fromisoformat(
                str(commit_ts).replace("Z", "+00:00")
            )
        except ValueError:
            logger.debug("Unparseable commit_timestamp %r", commit_ts)

    return ChangeEvent(**fields)


class SupabaseRealtimeBridge:
    """
    Lifetime is tied to the FastAPI app (see main.lifespan).
    """

    def __init__(self, hub: RealtimeHub):
        self.hub = hub
        self._client: AsyncClient | None = None
        self._channel = None

    def handle_payload(self, payload: dict[str, Any]) -> None:
        event = change_event_from_payload(payload)
        if event is None:
            logger.debug("Ignoring non-row realtime payload: %s", payload)
            return
        self.hub.publish(event)

    async def start(self) -> None:
        self._client = await supabase_realtime()
        self._channel = self._client.channel(unique_channel_name("bridge"))
        await self._channel.on_postgres_changes(
            "*",
            schema="public",
            table=ORDERS_TABLE,
            callback=self.handle_payload,
        ).subscribe()
        logger.info("Realtime bridge subscribed to public.%s", ORDERS_TABLE)

    async def stop(self) -> None:
        if self._client is None or self._channel is None:
            return
        try:
            await self._client.remove_channel(self._channel)
        except Exception as e:
            logger.warning("Realtime bridge teardown failed: %s", e)
        finally:
            self._channel = None
            self._client = None

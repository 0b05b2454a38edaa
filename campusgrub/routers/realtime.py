# campusgrub/routers/realtime.py
"""
WebSocket streams of reconciled order snapshots.

Each connection owns one OrderViewController: the initial snapshot is
sent on connect, then a fresh snapshot after every change. The
controller (and its hub subscription) is closed when the socket closes.

Auth: pass the Supabase JWT as `?token=`.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable

from fastapi import APIRouter, Depends, WebSocket, WebSocketException, status
from starlette.concurrency import run_in_threadpool

from campusgrub.core.auth import Identity, websocket_identity
from campusgrub.core.exceptions import OrderServiceError
from campusgrub.database import session_factory
from campusgrub.routers.orders import service as order_service
from campusgrub.schemas.order import OrderRead
from campusgrub.services.feed_service import FeedService
from campusgrub.services.order_views import OrderViewController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["Realtime"])

feeds = FeedService(order_service, session_factory)

ViewOpener = Callable[[Callable[[list[OrderRead]], None]], OrderViewController]


def _require(identity: Identity | None, role: str | None = None) -> Identity:
    if identity is None:
        raise WebSocketException(
            code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required"
        )
    if role is not None and identity.role != role:
        raise WebSocketException(
            code=status.WS_1008_POLICY_VIOLATION, reason=f"{role.title()} access required"
        )
    return identity


def _check_order_access(identity: Identity, order_id: uuid.UUID) -> None:
    with session_factory() as session:
        order_service.get_order(session, identity, order_id)


async def _stream(websocket: WebSocket, open_view: ViewOpener) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[list[OrderRead]] = asyncio.Queue()

    def push(snapshot: list[OrderRead]) -> None:
        # Called on whichever thread published the change
        loop.call_soon_threadsafe(queue.put_nowait, snapshot)

    await websocket.accept()
    try:
        view = await run_in_threadpool(open_view, push)
    except OrderServiceError as e:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason=e.message)
        return

    async def pump() -> None:
        while True:
            snapshot = await queue.get()
            await websocket.send_json(
                {
                    "type": "snapshot",
                    "live": view.live,
                    "orders": [o.model_dump(mode="json") for o in snapshot],
                }
            )

    async def watch() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = [asyncio.create_task(pump()), asyncio.create_task(watch())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.info("Order stream ended: %r", task.exception())
    finally:
        for task in tasks:
            task.cancel()
        view.close()


@router.websocket("/orders/{order_id}")
async def order_stream(
    websocket: WebSocket,
    order_id: uuid.UUID,
    identity: Identity | None = Depends(websocket_identity),
):
    """
    Student tracking view for one order.
    """
    identity = _require(identity)
    try:
        await run_in_threadpool(_check_order_access, identity, order_id)
    except OrderServiceError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)

    await _stream(
        websocket,
        lambda push: feeds.subscribe_order(order_id, on_change=push),
    )


@router.websocket("/vendor/orders")
async def vendor_orders_stream(
    websocket: WebSocket,
    shop_id: uuid.UUID | None = None,
    identity: Identity | None = Depends(websocket_identity),
):
    """
    Vendor dashboard: active orders, optionally for one shop.
    """
    vendor = _require(identity, "vendor")
    await _stream(
        websocket,
        lambda push: feeds.subscribe_vendor_active_orders(
            vendor.id, shop_id, on_change=push
        ),
    )


@router.websocket("/student/orders")
async def student_orders_stream(
    websocket: WebSocket,
    active: bool = True,
    identity: Identity | None = Depends(websocket_identity),
):
    student = _require(identity, "student")
    await _stream(
        websocket,
        lambda push: feeds.subscribe_student_orders(student.id, active, on_change=push),
    )


@router.websocket("/feed")
async def feed_stream(websocket: WebSocket):
    """
    Public community feed (no auth).
    """
    await _stream(websocket, lambda push: feeds.subscribe_public_feed(on_change=push))

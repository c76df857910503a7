import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from fulfillment.database import session_factory
from fulfillment.dependencies.realtime import get_realtime_transport
from fulfillment.services.realtime_service import RealtimeService
from fulfillment.utils.token import user_from_token

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


def _resolve_user(token: Optional[str]):
    with session_factory() as session:
        user = user_from_token(token, session)
        return (user.id, user.is_admin) if user else (None, False)


async def stop_sender(sender: asyncio.Task) -> None:
    """Cancel the outbound pump and surface anything it died of."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("Realtime sender failed")


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    Push purchase, progress and (for admins) moderation events to one client.

    Each connection owns its ``RealtimeService``; closing the socket tears
    every subscription down.
    """
    user_id, is_admin = await run_in_threadpool(_resolve_user, token)

    if user_id is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue = asyncio.Queue()

    def forward(notification):
        loop.call_soon_threadsafe(outbox.put_nowait, notification.model_dump(mode="json"))

    service = RealtimeService(get_realtime_transport(), session_factory)
    service.subscribe_to_purchase_updates(user_id, forward)
    service.subscribe_to_progress_sync(user_id, forward)
    if is_admin:
        service.subscribe_to_admin_notifications(forward)
        service.subscribe_to_activity_feed(forward)

    async def pump():
        while True:
            await websocket.send_json(await outbox.get())

    sender = asyncio.create_task(pump())
    try:
        await websocket.send_json({"type": "ready", "subscriptions": service.subscription_ids()})
        while True:
            # clients only ping; anything they send is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Realtime client for user {user_id} disconnected")
    finally:
        service.close()
        await stop_sender(sender)

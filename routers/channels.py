import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from auth_utils import decode_user_id
from database import SessionLocal
from models import User
from notifier import broker, user_channel
from policies import can_join_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["channels"])


def _load_user(user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    db = SessionLocal()
    try:
        return db.get(User, user_id)
    finally:
        db.close()


async def _forward(websocket: WebSocket, subscription):
    while True:
        message = await subscription.get()
        await websocket.send_json(message)


async def _wait_for_disconnect(websocket: WebSocket):
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/tasks.user.{user_id}")
async def task_channel(websocket: WebSocket, user_id: int, token: Optional[str] = None):
    """
    Private live channel of one user.

    The bearer token travels as ``?token=`` because browsers cannot set
    headers on a WebSocket handshake. Only the channel's own user may join.
    """
    user = _load_user(decode_user_id(token))
    if user is None or not can_join_channel(user, user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    topic = user_channel(user_id)
    # Subscribe before accepting, nothing published after the handshake gets lost
    subscription = broker.subscribe(topic)
    await websocket.accept()
    logger.info("User %s joined %s", user.id, topic)

    tasks = [
        asyncio.create_task(_forward(websocket, subscription)),
        asyncio.create_task(_wait_for_disconnect(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                raise exc
    finally:
        for task in tasks:
            task.cancel()
        broker.unsubscribe(subscription)
        logger.info("User %s left %s", user.id, topic)

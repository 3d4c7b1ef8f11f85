"""
Live notification channel.

A connected client always receives its own notification queue and the
broadcast topic. Project topics are added and dropped with client frames:

    {"action": "subscribe", "projectId": 7}
    {"action": "unsubscribe", "projectId": 7}
    {"action": "chat", "message": "hello"}
"""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from tracker.core.exceptions import AppError
from tracker.core.security import InvalidTokenError, decode_access_token
from tracker.notifications.broker import BROADCAST_DESTINATION, project_destination, user_destination
from tracker.schemas import NotificationMessage, Severity
from tracker.services.project_service import ProjectService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        item = await queue.get()
        await websocket.send_json(item)


async def _can_watch(websocket: WebSocket, project_id: int, email: str) -> bool:
    state = websocket.app.state
    async with state.session_factory() as session:
        service = ProjectService(session, state.cache, state.dispatcher)
        try:
            await service.get_project_by_id(project_id, email)
        except AppError as e:
            logger.info("Subscription to project %s refused for %s: %s", project_id, email, e.message)
            return False
    return True


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: str = Query(default="")):
    state = websocket.app.state
    try:
        email = decode_access_token(token, state.settings)
    except InvalidTokenError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    broker = state.broker
    queue = broker.subscribe(user_destination(email))
    broker.subscribe(BROADCAST_DESTINATION, queue)
    destinations = {user_destination(email), BROADCAST_DESTINATION}
    sender = asyncio.create_task(_pump(websocket, queue))
    logger.info("WebSocket connected: %s", email)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                frame = None
            if not isinstance(frame, dict):
                await websocket.send_json({"error": "Frames must be JSON objects"})
                continue
            action = frame.get("action")
            if action in ("subscribe", "unsubscribe"):
                try:
                    project_id = int(frame.get("projectId"))
                except (TypeError, ValueError):
                    await websocket.send_json({"error": "projectId is required"})
                    continue
                destination = project_destination(project_id)
                if action == "unsubscribe":
                    broker.unsubscribe(destination, queue)
                    destinations.discard(destination)
                elif await _can_watch(websocket, project_id, email):
                    broker.subscribe(destination, queue)
                    destinations.add(destination)
                else:
                    await websocket.send_json({"error": f"Cannot subscribe to project {project_id}"})
            elif action == "chat":
                state.dispatcher.broadcast(
                    "CHAT",
                    NotificationMessage(
                        title=f"Message from {email}",
                        message=str(frame.get("message", "")),
                        type=Severity.INFO,
                        user_id=email,
                    ),
                )
            else:
                await websocket.send_json({"error": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: %s", email)
    finally:
        sender.cancel()
        with contextlib.suppress(Exception, asyncio.CancelledError):
            await sender
        for destination in destinations:
            broker.unsubscribe(destination, queue)

"""
WebSocket router for live ticket conversations.

One socket per open conversation view. The socket is subscribed to the
ticket's change feed (message inserts, ticket updates) and to its typing
presence topic. Typing frames from the client are fanned out to the other
viewers and never stored.
"""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session

from supportdesk.core.deps import COOKIE_NAME, get_db, session_from_token
from supportdesk.core.errors import AuthError, NotFoundError
from supportdesk.core.structured_logging import build_log_context
from supportdesk.core.websocket import manager
from supportdesk.schemas.realtime import (
    TYPING,
    TypingEvent,
    WsInbound,
    WsOutbound,
    ticket_topic,
    typing_topic,
)
from supportdesk.services import ticket_service

router = APIRouter(prefix="/ws", tags=["WebSocket"])
logger = logging.getLogger(__name__)


def _parse_frame(data: str) -> WsInbound | None:
    if data == "ping":
        return WsInbound(type="ping")
    try:
        return WsInbound.model_validate_json(data)
    except ValidationError:
        return None


@router.websocket("/tickets/{ticket_id}")
async def ticket_socket(
    websocket: WebSocket,
    ticket_id: UUID,
    token: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """
    Live feed for one ticket.

    Authenticates via ``?token=...`` or the session cookie. Customers may only
    open their own tickets; internal notes are delivered to agents only.
    """
    try:
        session = session_from_token(db, token or websocket.cookies.get(COOKIE_NAME))
    except AuthError:
        await websocket.close(code=4001, reason="Authentication required")
        return

    try:
        ticket_service.get_ticket_for_session(db, session=session, ticket_id=ticket_id)
    except NotFoundError:
        await websocket.close(code=4004, reason="Ticket not found")
        return

    feed_topic = ticket_topic(ticket_id)
    presence_topic = typing_topic(ticket_id)

    await manager.connect(websocket)
    await manager.subscribe(
        websocket, feed_topic, user_id=session.user_id, is_admin=session.is_admin
    )
    await manager.subscribe(
        websocket, presence_topic, user_id=session.user_id, is_admin=session.is_admin
    )
    logger.debug(
        "Ticket socket opened",
        extra=build_log_context(user_id=str(session.user_id), ticket_id=str(ticket_id)),
    )

    try:
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            frame = _parse_frame(data)
            if frame is None:
                continue
            if frame.type == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
            elif frame.type == TYPING:
                # Sender identity comes from the session, not the frame.
                event = TypingEvent(ticket_id=ticket_id, sender_id=session.user_id)
                outbound = WsOutbound(
                    type=TYPING, topic=presence_topic, data=event.model_dump(mode="json")
                )
                await manager.publish(presence_topic, outbound.model_dump(), exclude=websocket)
    finally:
        await manager.disconnect(websocket)

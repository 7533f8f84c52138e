"""WebSocket endpoint connecting frontend contexts to the message channel."""

import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from tollgate.channels.base import FrontendContext
from tollgate.channels.bus import MessageChannel
from tollgate.model.message import INBOUND_TYPES, ErrorMessage, dump_message, parse_message

logger = logging.getLogger(__name__)


class WebSocketContext(FrontendContext):
    """Frontend context backed by one WebSocket connection."""

    name = "ws"

    def __init__(self, websocket: WebSocket, context_id: str | None = None) -> None:
        super().__init__(context_id)
        self._websocket = websocket

    async def post(self, message: dict[str, Any]) -> None:
        await self._websocket.send_json(message)


def _decode(raw: str) -> Any:
    """Parse one inbound frame into a frontend-to-backend message.

    Raises:
        ValueError: If the frame is not valid JSON or not an inbound message.
    """
    try:
        message = parse_message(json.loads(raw))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e.msg}") from e
    except ValidationError as e:
        raise ValueError(f"Invalid message: {e.error_count()} validation error(s)") from e
    if message.type not in INBOUND_TYPES:
        raise ValueError(f"Message type {message.type} is not accepted from a frontend")
    return message


async def channel_endpoint(websocket: WebSocket) -> None:
    """Attach the connection as a frontend context until it disconnects.

    Invalid frames are answered with ERROR on this connection only.
    """
    channel: MessageChannel = websocket.app.state.channel
    await websocket.accept()

    context = WebSocketContext(websocket)
    detach = channel.attach(context)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = _decode(raw)
            except ValueError as e:
                logger.warning(f"Rejected frame from {context.context_id}: {e}")
                await context.post(dump_message(ErrorMessage(message=str(e))))
                continue
            await channel.send(message, origin=context)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed: {context.context_id}")
    finally:
        detach()

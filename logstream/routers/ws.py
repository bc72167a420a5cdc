"""WebSocket endpoint that streams container logs to a viewer.

Protocol:
  1. Client connects to /api/ws/logs; server sends {"type": "connected"}
  2. Client sends {"type": "subscribe", "sourceId": "redis"} (sourceId optional)
  3. Server pushes {"type": "log", "data": {...}} per record and
     {"type": "error", "message": "..."} on failures or degraded mode
  4. Client may send {"type": "unsubscribe"} or subscribe to another source;
     closing the socket always tears the subscription down
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketState

from logstream.config import settings
from logstream.errors import ProtocolError
from logstream.models.log import (
    ConnectedMessage,
    ErrorMessage,
    ServerMessage,
    SubscribeRequest,
    parse_client_message,
)
from logstream.services.subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class LogConnection:
    """Protocol endpoint for one viewer connection."""

    def __init__(self, ws: WebSocket, manager: SubscriptionManager) -> None:
        self.ws = ws
        self.manager = manager
        self.connection_id = uuid.uuid4().hex[:12]
        self._send_lock = asyncio.Lock()

    @property
    def _log_extra(self) -> dict[str, str]:
        return {"connection_id": self.connection_id}

    async def send(self, message: ServerMessage) -> None:
        # Backend tasks and the receive loop both send; keep frames whole
        async with self._send_lock:
            await self.ws.send_text(message.model_dump_json())

    async def handle(self, raw: str | bytes) -> None:
        """Apply one inbound frame. Bad frames are answered, never fatal."""
        try:
            request = parse_client_message(raw)
        except ProtocolError as exc:
            logger.warning("Error processing message: %s", exc.detail, extra=self._log_extra)
            await self.send(ErrorMessage(message="Invalid message format"))
            return

        if isinstance(request, SubscribeRequest):
            source_id = request.source_id or settings.default_source_id
            await self.manager.subscribe(self.connection_id, source_id, self.send)
        else:
            await self.manager.unsubscribe(self.connection_id)

    async def run(self) -> None:
        await self.ws.accept()
        logger.info("Client connected", extra=self._log_extra)
        try:
            await self.send(ConnectedMessage())
            while True:
                message = await self.ws.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info("Client disconnected", extra=self._log_extra)
                    break
                await self.handle(message.get("text") or message.get("bytes") or "")
        except Exception:
            logger.exception("WebSocket error", extra=self._log_extra)
        finally:
            await self.manager.unsubscribe(self.connection_id)
            if self.ws.application_state == WebSocketState.CONNECTED and \
                    self.ws.client_state == WebSocketState.CONNECTED:
                await self.ws.close()


@router.websocket("/api/ws/logs")
async def ws_logs(ws: WebSocket) -> None:
    """Stream logs for whichever source the client subscribes to."""
    await LogConnection(ws, ws.app.state.subscriptions).run()

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..state import get_relay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    relay = get_relay(ws)
    await ws.accept()
    connection = relay.open(ws)
    try:
        while True:
            # Text and binary frames both go to the relay, which drops anything it can't decode.
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""
            await relay.handle_frame(connection, data)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("websocket error on %r", connection)
    finally:
        await relay.close(connection)

from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from routers.rooms import rooms_router
from backend import Connection
from session import RoomSessionProtocol, get_session_protocol
import json
import asyncio
from typing import Optional
from constants import CORS_ORIGINS, LIVENESS_TEXT, LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/", response_class=PlainTextResponse)
async def liveness():
    return LIVENESS_TEXT


async def pump_outbox(websocket: WebSocket, connection: Connection):
    """Background task forwarding queued frames to the socket until closed."""
    try:
        while True:
            frame = await connection.outbox.get()
            if frame is None:
                break
            await websocket.send_text(json.dumps(frame))
        if connection.overflowed:
            logger.warning(f"Closing connection {connection.session_id}, client is not reading")
            await websocket.close(code=1008)
    except asyncio.CancelledError:
        logger.debug(f"Outbox writer cancelled for connection {connection.session_id}")
        raise
    except Exception as e:
        # socket already gone; the reader side runs the disconnect cleanup
        logger.debug(f"Outbox writer for connection {connection.session_id} stopped: {e}")


def parse_frame(raw: str):
    """Return (event, data) from a text frame, or None when it is not a usable frame."""
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        return None
    return message["event"], message.get("data")


@app.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    display_name: Optional[str] = None,
    protocol: RoomSessionProtocol = Depends(get_session_protocol),
):
    """Signaling WebSocket.

    Frames are JSON objects `{"event": <name>, "data": <payload>}` in both
    directions. Query parameters:
    - display_name: Optional display name, defaults to "Anonymous"
    """
    await websocket.accept()
    name = display_name.strip() if display_name and display_name.strip() else None
    connection = protocol.connect(display_name=name)
    writer = asyncio.create_task(pump_outbox(websocket, connection))

    message_count = 0
    try:
        while True:
            data = await websocket.receive_text()
            message_count += 1

            frame = parse_frame(data)
            if frame is None:
                logger.warning(f"Dropped malformed frame #{message_count} from connection {connection.session_id}")
                continue

            event, payload = frame
            logger.debug(f"Received {event} (#{message_count}) from connection {connection.session_id}")
            protocol.handle(connection, event, payload)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection.session_id}")
    except Exception as e:
        logger.error(f"Error receiving message from connection {connection.session_id}: {e}", exc_info=True)
    finally:
        protocol.disconnect(connection)
        connection.close()
        try:
            await asyncio.wait_for(writer, timeout=1.0)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            writer.cancel()
        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")

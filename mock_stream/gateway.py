"""
Realtime gateway: WebSocket endpoint for DJ session collaboration

A connection starts CONNECTED, becomes JOINED after join_session and ends
CLOSED when the socket goes away. Inbound messages are {type, ...payload};
anything unrecognised or malformed is logged and dropped without closing
the socket.
"""
import asyncio
import contextlib
import enum
import json
import logging

from aiohttp import web

from . import config
from .coordinator import SessionCoordinator
from .errors import MockStreamError

logger = logging.getLogger("mock_stream")

COORDINATOR = web.AppKey("coordinator", SessionCoordinator)

WELCOME_MESSAGE = "Connected to OneStopRadio DJ WebSocket server"


class ConnectionState(enum.Enum):
    CONNECTED = "connected"
    JOINED = "joined"
    CLOSED = "closed"


class Connection:
    """
    One subscriber's WebSocket with a bounded outbound queue.

    send() never blocks: messages are drained to the socket in order by a
    writer task, so a slow client only delays itself.
    """

    def __init__(self, ws: web.WebSocketResponse, queue_size: int = None):
        self.ws = ws
        self.session_id = None
        self._closed = False
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size or config.WS_SEND_QUEUE_SIZE)
        self._writer = None

    @property
    def state(self) -> ConnectionState:
        if not self.is_open:
            return ConnectionState.CLOSED
        if self.session_id is not None:
            return ConnectionState.JOINED
        return ConnectionState.CONNECTED

    @property
    def is_open(self) -> bool:
        return not self._closed and not self.ws.closed

    def start(self) -> None:
        self._writer = asyncio.ensure_future(self._drain())

    def send(self, text: str) -> bool:
        if not self.is_open:
            return False
        try:
            self._outbox.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning("⚠️ Outbound queue full, dropping message for session %s", self.session_id)
            return False
        return True

    def send_json(self, message: dict) -> bool:
        return self.send(json.dumps(message))

    async def _drain(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await self.ws.send_str(text)
            except (ConnectionError, RuntimeError) as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                self._closed = True
                return

    async def close(self) -> None:
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer
            self._writer = None


# ============================================================
# INBOUND MESSAGE HANDLERS
# ============================================================

def _on_join_session(coordinator, connection, message):
    session_id = message.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        return
    coordinator.join(session_id, connection)


def _on_audio_levels(coordinator, connection, message):
    if connection.state is not ConnectionState.JOINED or message.get("data") is None:
        return
    coordinator.update_audio_levels(connection.session_id, message["data"])


def _on_mixer_update(coordinator, connection, message):
    if connection.state is not ConnectionState.JOINED or message.get("data") is None:
        return
    coordinator.update_mixer(connection.session_id, message["data"])


def _on_deck_update(coordinator, connection, message):
    if connection.state is not ConnectionState.JOINED or not message.get("deck") or message.get("data") is None:
        return
    coordinator.update_deck(connection.session_id, message["deck"], message["data"])


def _on_heartbeat(coordinator, connection, message):
    connection.send_json({"type": "heartbeat_ack"})


MESSAGE_HANDLERS = {
    "join_session": _on_join_session,
    "audio_levels": _on_audio_levels,
    "mixer_update": _on_mixer_update,
    "deck_update": _on_deck_update,
    "heartbeat": _on_heartbeat,
}


def handle_message(coordinator: SessionCoordinator, connection: Connection, raw: str) -> None:
    """Dispatch one inbound text frame"""
    if raw == "ping":
        connection.send("pong")
        return

    try:
        message = json.loads(raw)
    except ValueError as e:
        logger.debug(f"Dropping malformed WebSocket message: {e}")
        return
    if not isinstance(message, dict):
        logger.debug("Dropping non-object WebSocket message")
        return

    handler = MESSAGE_HANDLERS.get(message.get("type"))
    if handler is None:
        logger.debug("🔍 Unknown WebSocket message type: %s", message.get("type"))
        return

    try:
        handler(coordinator, connection, message)
    except MockStreamError as e:
        logger.debug("Ignoring %s message: %s", message.get("type"), e.message)
    except Exception:
        # One bad payload must not take the socket down
        logger.exception(f"❌ Failed to handle {message.get('type')} message")


# ============================================================
# WEBSOCKET ENDPOINT
# ============================================================

async def ws_dj_session(request: web.Request) -> web.WebSocketResponse:
    """WebSocket endpoint for real-time DJ session state"""
    coordinator = request.app[COORDINATOR]
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    request["ws"] = ws

    connection = Connection(ws)
    connection.start()
    logger.info("🔗 New WebSocket connection established")
    connection.send_json({"type": "connected", "message": WELCOME_MESSAGE})

    try:
        async for msg in ws:
            if msg.type == web.WSMsgType.TEXT:
                handle_message(coordinator, connection, msg.data)
            elif msg.type == web.WSMsgType.ERROR:
                logger.error(f"❌ WebSocket error: {ws.exception()}")
    finally:
        coordinator.leave(connection)
        await connection.close()
        logger.info("🔗 WebSocket connection closed")

    return ws

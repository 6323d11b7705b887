"""
In-memory real-time broker: one private channel per user.

Lifecycle code publishes through the Notifier port; the broker fans each
event out to every live WebSocket the target users hold. Delivery is
best-effort and at-most-once: nothing is persisted, offline users miss the
event and recover through the REST endpoints.

publish() is safe to call from FastAPI's worker threads (sync endpoints):
messages are handed to each connection's event loop and queued there, and a
per-connection sender task drains the queue. A full queue drops the message.

This module intentionally uses in-memory structures; running more than one
server process needs a shared broker (Redis pub/sub, NATS, ...) behind the
same Notifier port.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

import jwt
from fastapi import HTTPException, WebSocket, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketDisconnect, WebSocketState

from nova_api.db import SessionLocal
from nova_api.errors import NovaError
from nova_api.models.user import User
from nova_api.security import decode_token

logger = logging.getLogger(__name__)

# Heartbeat and backpressure behavior.
PING_INTERVAL_SECONDS = 20
SEND_TIMEOUT_SECONDS = 3
OUTBOX_SIZE = 100
# When a client is slow for too long, disconnect to protect server memory/CPU.
MAX_CONSECUTIVE_SEND_TIMEOUTS = 3


class Notifier(Protocol):
    """Port used by the ride lifecycle to push events to users."""

    def publish(self, user_ids: Iterable[UUID], event: str, payload: Any) -> int:
        """Queue event for every live connection of user_ids; return how many were targeted."""
        ...


@dataclass(eq=False)
class Connection:
    """Represents one active WebSocket client connection."""
    websocket: WebSocket
    user_id: UUID
    role: str
    loop: asyncio.AbstractEventLoop
    connected_at: float = field(default_factory=time.time)
    outbox: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=OUTBOX_SIZE))


def encode_message(event: str, payload: Any) -> str:
    return json.dumps({"event": event, "data": jsonable_encoder(payload)})


class UserChannelBroker:
    """In-memory broker mapping user_id -> live connections (several tabs allowed)."""

    def __init__(self):
        self._channels: Dict[UUID, List[Connection]] = {}
        self._lock = threading.Lock()

    def register(self, conn: Connection) -> None:
        with self._lock:
            self._channels.setdefault(conn.user_id, []).append(conn)

    def unregister(self, conn: Connection) -> None:
        with self._lock:
            conns = self._channels.get(conn.user_id)
            if not conns:
                return
            if conn in conns:
                conns.remove(conn)
            if not conns:
                self._channels.pop(conn.user_id, None)

    def connections_for(self, user_id: UUID) -> List[Connection]:
        with self._lock:
            return list(self._channels.get(user_id, ()))

    def is_connected(self, user_id: UUID) -> bool:
        with self._lock:
            return bool(self._channels.get(user_id))

    def clear(self) -> None:
        with self._lock:
            self._channels.clear()

    # PUBLIC_INTERFACE
    def publish(self, user_ids: Iterable[UUID], event: str, payload: Any) -> int:
        """
        Fan event out to every connection of user_ids.

        Fire-and-forget: returns the number of connections the message was
        handed to, not the number that received it.
        """
        text = encode_message(event, payload)
        targeted = 0
        for user_id in set(user_ids):
            for conn in self.connections_for(user_id):
                try:
                    conn.loop.call_soon_threadsafe(_enqueue, conn, text, event)
                except RuntimeError:
                    # Event loop already closed; the session is going away.
                    logger.warning("Dropping %s for user %s: connection loop closed", event, user_id)
                    continue
                targeted += 1
        return targeted


def _enqueue(conn: Connection, text: str, event: str) -> None:
    try:
        conn.outbox.put_nowait(text)
    except asyncio.QueueFull:
        logger.warning("Dropping %s for user %s: outbound queue full", event, conn.user_id)


broker = UserChannelBroker()


def _close_code(code: int) -> int:
    """Ensure a valid close code."""
    if 1000 <= code <= 4999:
        return code
    return 1008


async def _sender(conn: Connection, stop_event: asyncio.Event) -> None:
    """Drain the connection outbox onto the socket until stopped or too slow."""
    timeouts = 0
    while not stop_event.is_set():
        text = await conn.outbox.get()
        if conn.websocket.client_state != WebSocketState.CONNECTED:
            break
        try:
            await asyncio.wait_for(conn.websocket.send_text(text), timeout=SEND_TIMEOUT_SECONDS)
            timeouts = 0
        except asyncio.TimeoutError:
            timeouts += 1
            logger.warning("Send timeout for user %s (%d in a row)", conn.user_id, timeouts)
            if timeouts >= MAX_CONSECUTIVE_SEND_TIMEOUTS:
                break
        except RuntimeError:
            break
    stop_event.set()


async def _heartbeat_sender(conn: Connection, stop_event: asyncio.Event) -> None:
    """Queue periodic ping messages until stop_event is set."""
    while not stop_event.is_set():
        await asyncio.sleep(PING_INTERVAL_SECONDS)
        if stop_event.is_set():
            break
        # App-level ping since browser WebSockets don't expose ping frames.
        _enqueue(conn, encode_message("ping", {"ts": time.time()}), "ping")


def _extract_token_from_ws(websocket: WebSocket) -> Optional[str]:
    """
    Extract JWT from:
    - Authorization: Bearer <token>
    - ?token=<token> query
    """
    auth = websocket.headers.get("authorization")
    if auth:
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()

    token = websocket.query_params.get("token")
    if token:
        return token.strip()
    return None


# PUBLIC_INTERFACE
def authenticate_ws_user(websocket: WebSocket, db: Session) -> User:
    """
    Authenticate a WebSocket connection using the same JWT rules as REST.

    The private channel joined is always the token's subject, so a client
    cannot subscribe to another user's events.

    Raises:
        HTTPException(401): on missing/invalid token or unknown user.
        HTTPException(403): if the account is deactivated.
    """
    token = _extract_token_from_ws(websocket)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token (use Authorization: Bearer ... or ?token=...).",
        )

    try:
        payload = decode_token(token)
        user_id = UUID(str(payload.get("sub")))
    except (jwt.PyJWTError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")

    user = db.scalar(select(User).where(User.id == user_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated.")
    return user


MessageHandler = Callable[[User, Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


async def run_ws_session(
    websocket: WebSocket,
    *,
    on_message: MessageHandler,
    session_factory: Callable[[], Session] = SessionLocal,
    channel_broker: Optional[UserChannelBroker] = None,
) -> None:
    """
    Generic WebSocket session runner with:
    - auth (JWT) and private channel join
    - outbound queue + sender task
    - heartbeat pings
    - graceful disconnect

    The socket holds no database session: authentication uses a short-lived
    one and on_message must open its own per message. The User passed to
    on_message is a detached snapshot of the authenticated account.

    Client messages other than {"type": "pong"} are passed to on_message; a
    returned dict is sent back as an "ack" event, a NovaError as "error".
    Any other failure ends the session with close code 1011.

    PUBLIC_INTERFACE
    """
    channel_broker = channel_broker or broker
    # Accept early so client gets WS upgrade; on auth failure we close with 1008.
    await websocket.accept()

    try:
        with session_factory() as db:
            user = authenticate_ws_user(websocket, db)
    except HTTPException as e:
        await websocket.send_json({"event": "error", "data": {"message": e.detail}})
        await websocket.close(code=_close_code(1008), reason=str(e.detail))
        return

    role_value = user.role.value if hasattr(user.role, "value") else str(user.role)
    conn = Connection(
        websocket=websocket,
        user_id=user.id,
        role=role_value,
        loop=asyncio.get_running_loop(),
    )
    channel_broker.register(conn)
    logger.info("WebSocket connected: user=%s role=%s", user.id, role_value)

    _enqueue(conn, encode_message("connected", {"user_id": str(user.id), "role": role_value}), "connected")

    stop = asyncio.Event()
    sender_task = asyncio.create_task(_sender(conn, stop))
    heartbeat_task = asyncio.create_task(_heartbeat_sender(conn, stop))
    failed = False

    try:
        while websocket.client_state == WebSocketState.CONNECTED and not stop.is_set():
            try:
                msg = await websocket.receive_json()
            except WebSocketDisconnect:
                break
            except (ValueError, KeyError):
                # Client sent invalid JSON or a binary frame.
                _enqueue(conn, encode_message("error", {"message": "Invalid message format; expected JSON."}), "error")
                continue

            if not isinstance(msg, dict):
                _enqueue(conn, encode_message("error", {"message": "Expected a JSON object."}), "error")
                continue
            if msg.get("type") == "pong":
                continue

            try:
                reply = await on_message(user, msg)
            except NovaError as e:
                _enqueue(conn, encode_message("error", {"message": e.message}), "error")
                continue
            _enqueue(conn, encode_message("ack", reply or {"received_type": msg.get("type")}), "ack")
    except Exception:
        failed = True
        logger.exception("WebSocket session failed: user=%s", user.id)
    finally:
        stop.set()
        channel_broker.unregister(conn)
        heartbeat_task.cancel()
        sender_task.cancel()
        await asyncio.gather(heartbeat_task, sender_task, return_exceptions=True)
        if failed and websocket.client_state == WebSocketState.CONNECTED:
            await _close_with_error(websocket, "Internal server error")
        logger.info("WebSocket disconnected: user=%s", user.id)


async def _close_with_error(websocket: WebSocket, message: str) -> None:
    try:
        await websocket.send_json({"event": "error", "data": {"message": message}})
        await websocket.close(code=_close_code(1011), reason=message)
    except (RuntimeError, WebSocketDisconnect):
        logger.info("Client went away before the 1011 close was sent")

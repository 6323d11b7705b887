"""
WebSocket route for per-user real-time events.

Endpoint:
- /ws : joins the private channel of the authenticated user

Auth:
- Provide JWT via `Authorization: Bearer <token>` OR query param `?token=<token>`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket
from starlette.concurrency import run_in_threadpool

from nova_api.db import session_scope
from nova_api.deps import get_notifier
from nova_api.errors import AuthenticationError, PermissionDenied, ValidationError
from nova_api.models.user import User, UserRole
from nova_api.policy import authorize
from nova_api.realtime import Notifier, run_ws_session
from nova_api.services.drivers import update_driver_location
from nova_api.services.rides import RideService

router = APIRouter(tags=["realtime"])


def _coordinate(msg: Dict[str, Any], key: str, bound: float) -> float:
    try:
        value = float(msg[key])
    except (KeyError, TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not -bound <= value <= bound:
        raise ValidationError(f"{key} is out of range")
    return value


def handle_client_message(notifier: Notifier, user_id: UUID, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply one client message in its own session; None for types without a handler."""
    kind = msg.get("type")
    if kind not in ("location", "message"):
        return None

    with session_scope() as db:
        user = db.get(User, user_id)
        if user is None:
            raise AuthenticationError("Invalid or expired token.")
        if not user.is_active:
            raise PermissionDenied("Account is deactivated.")

        if kind == "location":
            authorize(user, "driver", "manage")
            lat = _coordinate(msg, "lat", 90)
            lng = _coordinate(msg, "lng", 180)
            update_driver_location(db, notifier, user, lat, lng)
            return {"received_type": "location", "location": {"lat": lat, "lng": lng}}

        try:
            ride_id = UUID(str(msg.get("ride_id")))
        except ValueError:
            raise ValidationError("ride_id must be a ride id")
        recipient = RideService(db, notifier).relay_message(user, ride_id, str(msg.get("text") or ""))
        return {"received_type": "message", "ride_id": str(ride_id), "delivered_to": str(recipient)}


@router.websocket("/ws")
async def ws_user_channel(
    websocket: WebSocket,
    notifier: Notifier = Depends(get_notifier),
) -> None:
    """
    Private event channel.

    Client messages (JSON):
    - {"type":"pong"}
    - {"type":"location","lat":..., "lng":...}     (drivers)
    - {"type":"message","ride_id":..., "text":...} (ride parties)

    Server messages (JSON):
    - {"event":"connected", "data":{...}}
    - {"event":"ping", ...} heartbeat
    - ride lifecycle events, "ack" and "error"
    """

    async def on_message(user: User, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await run_in_threadpool(handle_client_message, notifier, user.id, msg)

    await run_ws_session(websocket, on_message=on_message)


def websocket_usage() -> Dict[str, Any]:
    """Machine-readable summary of the /ws protocol (served at /docs/ws)."""
    return {
        "auth": {
            "header": "Authorization: Bearer <JWT>",
            "query": "?token=<JWT>",
        },
        "endpoint": "/ws",
        "envelope": {"event": "<name>", "data": "<payload>"},
        "messages": {
            "client_send": [
                {"type": "pong"},
                {"type": "location", "lat": -1.9441, "lng": 30.0619, "roles": [UserRole.driver.value]},
                {"type": "message", "ride_id": "<uuid>", "text": "I'm at the gate"},
            ],
            "server_events": [
                "connected",
                "ping",
                "newRideRequest",
                "rideAccepted",
                "rideStatusUpdated",
                "rideCancelled",
                "driverLocationUpdate",
                "sosActivated",
                "receiveMessage",
                "ack",
                "error",
            ],
        },
    }

"""
FastAPI application entrypoint for the Nova Transport backend.

Provides:
- Health check (/api/health)
- Authentication and account management (/api/auth/*)
- Ride booking and lifecycle (/api/rides/*)
- Driver self-service (/api/drivers/*)
- Safety alerts (/api/safety/sos)
- Administration (/api/admin/*)
- Per-user real-time events (ws /ws)

Configuration is read from the environment by nova_api.config.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nova_api.config import CORS_ALLOWED_ORIGINS, LOG_LEVEL
from nova_api.db import init_db
from nova_api.errors import install_error_handlers
from nova_api.models.base import utcnow
from nova_api.routers import admin as admin_router
from nova_api.routers import auth as auth_router
from nova_api.routers import drivers as drivers_router
from nova_api.routers import rides as rides_router
from nova_api.routers import safety as safety_router
from nova_api.routers import ws as ws_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()

openapi_tags = [
    {"name": "health", "description": "Health and readiness endpoints."},
    {"name": "auth", "description": "Registration, login, profile, contacts and payment methods."},
    {"name": "rides", "description": "Ride booking, acceptance, lifecycle, rating and history endpoints."},
    {"name": "drivers", "description": "Driver location, availability, vehicle profile and earnings."},
    {"name": "safety", "description": "SOS alerts."},
    {"name": "admin", "description": "Platform statistics and account administration."},
    {
        "name": "realtime",
        "description": "WebSocket endpoint for per-user ride events (see /docs/ws).",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Nova Transport API started")
    yield


app = FastAPI(
    title="Nova Transport API",
    description="Backend API for Nova Transport (passengers, drivers and admins).",
    version="1.0.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(auth_router.router)
app.include_router(rides_router.router)
app.include_router(drivers_router.router)
app.include_router(safety_router.router)
app.include_router(admin_router.router)
app.include_router(ws_router.router)


@app.get(
    "/api/health",
    tags=["health"],
    summary="Health check",
    description="Simple health check endpoint.",
    operation_id="health_check",
)
def health_check():
    """Return a simple health response."""
    return {"success": True, "message": "Server is running", "timestamp": utcnow().isoformat()}


@app.get(
    "/docs/ws",
    tags=["realtime"],
    summary="WebSocket usage guide",
    description="Human-readable documentation for the WebSocket endpoint (OpenAPI does not fully model WebSockets).",
    operation_id="docs_websocket_usage",
)
def websocket_usage_guide():
    """
    WebSocket usage guide.

    Authentication:
    - Provide JWT via header: Authorization: Bearer <token>
      OR via query: ?token=<token>

    Endpoint:
    - ws /ws
      * Joins the private channel of the token's user; no other channel can be joined.
      * Send: {"type":"pong"}, {"type":"location","lat":..,"lng":..} (drivers),
        {"type":"message","ride_id":..,"text":..} (ride parties)
      * Receive: {"event": <name>, "data": <payload>}

    Notes:
    - Heartbeats are "ping" events every ~20 seconds.
    - Delivery is best-effort; reconnecting clients should refresh via REST (/api/rides/active).
    """
    return ws_router.websocket_usage()

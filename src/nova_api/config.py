"""
Process configuration for the Nova Transport backend.

All values are read from the environment once, at import time. Required
variables raise a RuntimeError naming the missing key so a misconfigured
container fails fast instead of on the first request.

Configuration:
- DATABASE_URL: SQLAlchemy connection string (Postgres in production)
- JWT_SECRET_KEY: secret used to sign access tokens
- JWT_ALGORITHM: optional (default HS256)
- ACCESS_TOKEN_EXPIRE_MINUTES: optional (default 7 days)
- BCRYPT_ROUNDS: optional (default 12)
- GOOGLE_CLIENT_ID: optional; Google sign-in is rejected when unset
- CORS_ALLOWED_ORIGINS: optional, comma separated
- PUBLIC_TRACKING_BASE_URL: optional base for shared ride links
- LOG_LEVEL: optional (default INFO)
"""

import os
from typing import List


def _require_env(name: str) -> str:
    """Read a required environment variable or raise a clear error."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable: {name}. "
            "Please set it in the nova backend .env."
        )
    return value


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173,"
    "http://localhost:5174,"
    "https://novatransport.rw,"
    "https://novatransport.vercel.app"
)

DATABASE_URL = _require_env("DATABASE_URL")

JWT_SECRET_KEY = _require_env("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")

CORS_ALLOWED_ORIGINS = _split_csv(os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS))

PUBLIC_TRACKING_BASE_URL = os.getenv("PUBLIC_TRACKING_BASE_URL", "https://nova.transport/track").rstrip("/")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

"""
Shared FastAPI dependencies for authentication/authorization.

This module centralizes JWT parsing, the active-account check and the
role gate (policy.authorize) so routers enforce access consistently. It
also wires the ride lifecycle service to the real-time notifier.
"""

from __future__ import annotations

from typing import Any, Callable, Dict
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from nova_api.db import get_db
from nova_api.models.user import User
from nova_api.policy import authorize
from nova_api.realtime import Notifier, broker
from nova_api.security import decode_token
from nova_api.services.rides import RideService

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    """Create a standardized 401 exception with WWW-Authenticate header."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# PUBLIC_INTERFACE
def get_current_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """
    Return decoded JWT payload for the current request.

    Authentication: Bearer JWT access token.

    Raises:
        HTTPException(401): if token missing/invalid/expired.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authorized, no token")
    token = credentials.credentials
    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        raise _unauthorized("Invalid or expired token.")

    sub = payload.get("sub")
    if not sub:
        raise _unauthorized("Invalid token.")
    return payload


# PUBLIC_INTERFACE
def get_current_user_id(payload: Dict[str, Any] = Depends(get_current_token_payload)) -> UUID:
    """
    Return current authenticated user's id (UUID).

    Raises:
        HTTPException(401): if sub is not a valid UUID.
    """
    try:
        return UUID(str(payload.get("sub")))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token.")


# PUBLIC_INTERFACE
def get_current_user(db: Session = Depends(get_db), user_id: UUID = Depends(get_current_user_id)) -> User:
    """
    Return the current authenticated User ORM object.

    Raises:
        HTTPException(401): if token valid but user missing (treat as unauth).
        HTTPException(403): if the account has been deactivated.
    """
    user = db.scalar(select(User).where(User.id == user_id))
    if not user:
        raise _unauthorized("Invalid or expired token.")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated.")
    return user


# PUBLIC_INTERFACE
def require(resource: str, action: str) -> Callable[..., User]:
    """
    Build a dependency that gates a route on the (resource, action) role rule.

    Object-level checks (is this user a party to the ride?) happen later,
    once the target is loaded.
    """

    def _dependency(current_user: User = Depends(get_current_user)) -> User:
        authorize(current_user, resource, action)
        return current_user

    return _dependency


# PUBLIC_INTERFACE
def get_notifier() -> Notifier:
    """Return the process-wide real-time notifier (overridable in tests)."""
    return broker


# PUBLIC_INTERFACE
def get_ride_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> RideService:
    return RideService(db, notifier)

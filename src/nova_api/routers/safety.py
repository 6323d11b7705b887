from __future__ import annotations

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from nova_api.db import get_db
from nova_api.deps import get_current_user, get_notifier, get_ride_service
from nova_api.models.base import utcnow
from nova_api.models.user import User, UserRole
from nova_api.realtime import Notifier
from nova_api.schemas.safety import SosRequest, SosResponse
from nova_api.services.rides import RideService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/safety", tags=["safety"])


@router.post(
    "/sos",
    response_model=SosResponse,
    summary="Raise an SOS alert",
    description="Alert administrators and the other party of the caller's active ride.",
    operation_id="safety_sos",
)
def activate_sos(
    payload: SosRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rides: RideService = Depends(get_ride_service),
    notifier: Notifier = Depends(get_notifier),
) -> SosResponse:
    """
    Raise an SOS alert.

    The alert is pushed as `sosActivated` to every admin and, when the caller
    is on an active ride, to the other party. Contacting emergency services
    and trusted contacts happens outside this service.
    """
    payload = payload or SosRequest()
    ride = rides.active(current_user)

    targets: List[UUID] = list(
        db.scalars(select(User.id).where(User.role == UserRole.admin, User.is_active.is_(True))).all()
    )
    message = "SOS Activated. Administrators have been alerted."
    if ride is not None:
        other = ride.driver_id if ride.passenger_id == current_user.id else ride.passenger_id
        if other is not None:
            targets.append(other)
            message = "SOS Activated. Administrators and the other party of your ride have been alerted."

    contacts = len(current_user.trusted_contacts)
    logger.warning(
        "SOS raised by %s %s (ride=%s, contacts=%d)",
        current_user.role.value,
        current_user.id,
        ride.id if ride else None,
        contacts,
    )
    notifier.publish(
        targets,
        "sosActivated",
        {
            "user_id": str(current_user.id),
            "name": current_user.name,
            "phone": current_user.phone,
            "role": current_user.role.value,
            "ride_id": str(ride.id) if ride else None,
            "location": {"lat": payload.lat, "lng": payload.lng} if payload.lat is not None else None,
            "note": payload.note,
            "raised_at": utcnow().isoformat(),
        },
    )
    return SosResponse(
        message=message,
        trusted_contacts_notified=contacts,
        ride_id=ride.id if ride else None,
    )

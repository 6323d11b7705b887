from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from nova_api.errors import NotFoundError
from nova_api.models.base import utcnow
from nova_api.models.driver import Driver
from nova_api.models.ride import Ride
from nova_api.models.user import User
from nova_api.realtime import Notifier
from nova_api.services.rides import ACTIVE_FOR_DRIVER

logger = logging.getLogger(__name__)


def get_driver_profile(db: Session, user: User) -> Driver:
    driver = db.scalar(select(Driver).where(Driver.id == user.id))
    if not driver:
        raise NotFoundError("Driver profile not found")
    return driver


# PUBLIC_INTERFACE
def update_driver_location(db: Session, notifier: Notifier, user: User, lat: float, lng: float) -> Driver:
    """
    Persist the driver's last known position and push it to the passenger of
    the driver's active ride, if there is one.
    """
    driver = get_driver_profile(db, user)
    driver.location_lat = lat
    driver.location_lng = lng
    driver.updated_at = utcnow()
    db.add(driver)
    db.commit()
    db.refresh(driver)

    passenger_id: Optional[UUID] = db.scalar(
        select(Ride.passenger_id)
        .where(Ride.driver_id == user.id, Ride.status.in_(ACTIVE_FOR_DRIVER))
        .order_by(desc(Ride.created_at))
        .limit(1)
    )
    if passenger_id is not None:
        notifier.publish(
            [passenger_id],
            "driverLocationUpdate",
            {"driver_id": str(user.id), "location": {"lat": lat, "lng": lng}},
        )
    return driver

"""
Ride lifecycle manager.

State machine: pending -> accepted -> arrived -> started -> completed, with
cancelled reachable from any non-terminal state. Every transition is a
conditional UPDATE guarded by the status the caller observed, so when two
requests race only one of them changes the row; the other gets a
request-level error.

Notifications are sent after the commit through the injected Notifier.
Delivery is best-effort: a failed publish is logged and the committed
transition stands.
"""

from __future__ import annotations

import logging
import math
import secrets
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import desc, func, select, update
from sqlalchemy.orm import Session

from nova_api.config import PUBLIC_TRACKING_BASE_URL
from nova_api.errors import NotFoundError, ValidationError
from nova_api.fare import compute_fare
from nova_api.models.base import utcnow
from nova_api.models.driver import Driver
from nova_api.models.passenger import Passenger
from nova_api.models.ride import (
    TERMINAL_STATUSES,
    PaymentStatus,
    Ride,
    RideEvent,
    RideStatus,
    VehicleClass,
)
from nova_api.models.user import PaymentMethodType, User, UserRole
from nova_api.policy import authorize
from nova_api.realtime import Notifier
from nova_api.schemas.ride import RideCreateRequest, ride_to_public

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
PENDING_LIMIT = 20

# Status a driver may move a ride to -> the status it must currently have.
DRIVER_STEPS: Dict[RideStatus, RideStatus] = {
    RideStatus.arrived: RideStatus.accepted,
    RideStatus.started: RideStatus.arrived,
    RideStatus.completed: RideStatus.started,
}

ACTIVE_FOR_DRIVER = (RideStatus.accepted, RideStatus.arrived, RideStatus.started)
ACTIVE_FOR_PASSENGER = (RideStatus.pending,) + ACTIVE_FOR_DRIVER


def distance_km_haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Haversine distance in km.

    Proximity filtering is done in Python to avoid adding PostGIS as a dependency.
    """
    r = 6371.0
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = math.sin(dlat / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def _role(user: User) -> UserRole:
    return user.role if isinstance(user.role, UserRole) else UserRole(str(user.role))


class RideService:
    """Ride lifecycle operations for one request (one session)."""

    def __init__(self, db: Session, notifier: Notifier):
        self.db = db
        self.notifier = notifier

    # -- helpers -----------------------------------------------------------

    def _get(self, ride_id: UUID) -> Ride:
        ride = self.db.scalar(select(Ride).where(Ride.id == ride_id))
        if not ride:
            raise NotFoundError("Ride not found")
        return ride

    def _record(self, ride_id: UUID, event_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Persist a ride event row (committed with the transition)."""
        self.db.add(RideEvent(ride_id=ride_id, event_type=event_type, payload=payload or {}))

    def _notify(self, user_ids: Iterable[Optional[UUID]], event: str, ride: Ride) -> None:
        targets = [u for u in user_ids if u is not None]
        if not targets:
            return
        try:
            payload = ride_to_public(ride).model_dump(mode="json")
            delivered = self.notifier.publish(targets, event, payload)
        except Exception:
            logger.exception("Failed to publish %s for ride %s", event, ride.id)
            return
        logger.info("Published %s for ride %s to %d connection(s)", event, ride.id, delivered)

    def _transition(self, ride_id: UUID, expected: RideStatus, values: Dict[str, Any], **guards: Any) -> bool:
        """Apply values only if the ride still has the expected status (and guards)."""
        stmt = update(Ride).where(Ride.id == ride_id, Ride.status == expected)
        if "driver_id" in guards:
            driver_id = guards["driver_id"]
            stmt = stmt.where(Ride.driver_id.is_(None) if driver_id is None else Ride.driver_id == driver_id)
        values = dict(values, updated_at=utcnow())
        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        return result.rowcount == 1

    # -- commands ----------------------------------------------------------

    # PUBLIC_INTERFACE
    def create(self, passenger: User, payload: RideCreateRequest) -> Ride:
        """Create a pending ride and fan it out to every available driver."""
        authorize(passenger, "ride", "create")
        try:
            fare = compute_fare(payload.distance_km, payload.vehicle_type, payload.duration_min)
        except ValueError as e:
            raise ValidationError(str(e))

        ride = Ride(
            passenger_id=passenger.id,
            driver_id=None,
            pickup_address=payload.pickup_location.address,
            pickup_lat=payload.pickup_location.lat,
            pickup_lng=payload.pickup_location.lng,
            dropoff_address=payload.dropoff_location.address,
            dropoff_lat=payload.dropoff_location.lat,
            dropoff_lng=payload.dropoff_location.lng,
            vehicle_type=payload.vehicle_type,
            status=RideStatus.pending,
            base_fare=fare.base_fare,
            distance_fare=fare.distance_fare,
            time_fare=fare.time_fare,
            surge_fare=fare.surge_fare,
            fare_total=fare.total,
            distance_km=payload.distance_km,
            duration_min=payload.duration_min,
            payment_method=payload.payment_method,
            payment_status=PaymentStatus.pending,
        )
        self.db.add(ride)
        self.db.flush()
        self._record(
            ride.id,
            "ride_created",
            {"passenger_id": str(passenger.id), "vehicle_type": payload.vehicle_type.value, "fare": fare.as_dict()},
        )
        self.db.commit()
        self.db.refresh(ride)
        logger.info("Ride %s created by passenger %s (total=%.2f)", ride.id, passenger.id, ride.fare_total)

        available = self.available_driver_ids()
        logger.info("Sending ride request %s to %d available driver(s)", ride.id, len(available))
        self._notify(available, "newRideRequest", ride)
        return ride

    # PUBLIC_INTERFACE
    def accept(self, driver: User, ride_id: UUID) -> Ride:
        """
        Claim a pending ride for driver. First writer wins; later callers get
        'Ride is no longer available'.
        """
        authorize(driver, "ride", "accept")
        won = self._transition(
            ride_id,
            RideStatus.pending,
            {"driver_id": driver.id, "status": RideStatus.accepted},
            driver_id=None,
        )
        if not won:
            self.db.rollback()
            self._get(ride_id)
            raise ValidationError("Ride is no longer available")

        self.db.execute(
            update(Driver)
            .where(Driver.id == driver.id)
            .values(is_available=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._record(ride_id, "ride_accepted", {"driver_id": str(driver.id)})
        self.db.commit()

        ride = self._get(ride_id)
        logger.info("Ride %s accepted by driver %s", ride.id, driver.id)
        self._notify([ride.passenger_id], "rideAccepted", ride)
        return ride

    # PUBLIC_INTERFACE
    def update_status(self, driver: User, ride_id: UUID, new_status: RideStatus) -> Ride:
        """Advance an accepted ride one step; only the assigned driver may do this."""
        if new_status not in DRIVER_STEPS:
            raise ValidationError("Status must be one of: arrived, started, completed")

        ride = self._get(ride_id)
        authorize(driver, "ride", "advance", ride)

        expected = DRIVER_STEPS[new_status]
        current = ride.status
        if current != expected:
            raise ValidationError(f"Invalid status transition from '{current.value}' to '{new_status.value}'")

        now = utcnow()
        values: Dict[str, Any] = {"status": new_status}
        if new_status == RideStatus.started:
            values["start_time"] = now
        elif new_status == RideStatus.completed:
            values["end_time"] = now
            values["payment_status"] = (
                PaymentStatus.completed if ride.payment_method == PaymentMethodType.cash else PaymentStatus.pending
            )

        if not self._transition(ride_id, expected, values, driver_id=driver.id):
            self.db.rollback()
            raise ValidationError("Ride status has changed; please refresh")

        if new_status == RideStatus.completed:
            fare_total = ride.fare_total
            self.db.execute(
                update(Driver)
                .where(Driver.id == driver.id)
                .values(
                    total_rides=Driver.total_rides + 1,
                    earnings=Driver.earnings + fare_total,
                    is_available=True,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if ride.passenger_id is not None:
                self.db.execute(
                    update(Passenger)
                    .where(Passenger.id == ride.passenger_id)
                    .values(total_rides=Passenger.total_rides + 1)
                    .execution_options(synchronize_session=False)
                )

        self._record(
            ride_id,
            "status_changed",
            {"from": current.value, "to": new_status.value, "by_user_id": str(driver.id)},
        )
        self.db.commit()

        ride = self._get(ride_id)
        logger.info("Ride %s: %s -> %s", ride.id, current.value, new_status.value)
        self._notify([ride.passenger_id], "rideStatusUpdated", ride)
        return ride

    # PUBLIC_INTERFACE
    def cancel(self, user: User, ride_id: UUID, reason: Optional[str] = None) -> Ride:
        """Cancel a non-terminal ride on behalf of its passenger or assigned driver."""
        ride = self._get(ride_id)
        authorize(user, "ride", "cancel", ride)

        observed = ride.status
        if observed in TERMINAL_STATUSES:
            raise ValidationError("Cannot cancel this ride")

        cancelled = self._transition(
            ride_id,
            observed,
            {
                "status": RideStatus.cancelled,
                "cancelled_by_id": user.id,
                "cancellation_reason": reason,
            },
        )
        if not cancelled:
            self.db.rollback()
            raise ValidationError("Cannot cancel this ride")

        by_driver = ride.driver_id is not None and ride.driver_id == user.id
        if by_driver:
            self.db.execute(
                update(Driver)
                .where(Driver.id == user.id)
                .values(is_available=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        self._record(
            ride_id,
            "ride_cancelled",
            {"by_user_id": str(user.id), "from": observed.value, "reason": reason},
        )
        self.db.commit()

        ride = self._get(ride_id)
        logger.info("Ride %s cancelled by %s (was %s)", ride.id, user.id, observed.value)
        other_party = ride.passenger_id if by_driver else ride.driver_id
        self._notify([other_party], "rideCancelled", ride)
        return ride

    # PUBLIC_INTERFACE
    def rate(self, user: User, ride_id: UUID, rating: int, review: Optional[str] = None) -> Ride:
        """
        Rate the other party of a completed ride, once per party.

        The rated user's aggregate becomes the plain mean of every rating
        they have received.
        """
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        ride = self._get(ride_id)
        authorize(user, "ride", "rate", ride)
        if ride.status != RideStatus.completed:
            raise ValidationError("Can only rate completed rides")

        by_passenger = _role(user) == UserRole.passenger
        rating_col = Ride.rating_by_passenger if by_passenger else Ride.rating_by_driver
        review_field = "review_by_passenger" if by_passenger else "review_by_driver"

        result = self.db.execute(
            update(Ride)
            .where(Ride.id == ride_id, rating_col.is_(None))
            .values({rating_col.key: rating, review_field: review, "updated_at": utcnow()})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise ValidationError("You have already rated this ride")

        if by_passenger and ride.driver_id is not None:
            mean = self.db.scalar(
                select(func.avg(Ride.rating_by_passenger)).where(
                    Ride.driver_id == ride.driver_id, Ride.rating_by_passenger.is_not(None)
                )
            )
            self.db.execute(
                update(Driver)
                .where(Driver.id == ride.driver_id)
                .values(rating=round(float(mean), 2))
                .execution_options(synchronize_session=False)
            )
        elif not by_passenger and ride.passenger_id is not None:
            mean = self.db.scalar(
                select(func.avg(Ride.rating_by_driver)).where(
                    Ride.passenger_id == ride.passenger_id, Ride.rating_by_driver.is_not(None)
                )
            )
            self.db.execute(
                update(Passenger)
                .where(Passenger.id == ride.passenger_id)
                .values(rating=round(float(mean), 2))
                .execution_options(synchronize_session=False)
            )

        self._record(ride_id, "ride_rated", {"by_user_id": str(user.id), "rating": rating})
        self.db.commit()
        logger.info("Ride %s rated %d by %s", ride_id, rating, user.id)
        return self._get(ride_id)

    # PUBLIC_INTERFACE
    def share(self, user: User, ride_id: UUID) -> Tuple[str, int]:
        """Return a tracking link for the ride and how many trusted contacts could receive it."""
        ride = self._get(ride_id)
        authorize(user, "ride", "share", ride)
        token = secrets.token_urlsafe(8)
        link = f"{PUBLIC_TRACKING_BASE_URL}/{ride.id}?token={token}"
        return link, len(user.trusted_contacts)

    # PUBLIC_INTERFACE
    def relay_message(self, user: User, ride_id: UUID, text: str) -> UUID:
        """Forward a chat message to the other party of the ride; returns the recipient id."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text is required")
        ride = self._get(ride_id)
        authorize(user, "ride", "message", ride)
        recipient = ride.driver_id if ride.passenger_id == user.id else ride.passenger_id
        if recipient is None:
            raise ValidationError("No one to message on this ride yet")
        self.notifier.publish(
            [recipient],
            "receiveMessage",
            {
                "ride_id": str(ride.id),
                "sender_id": str(user.id),
                "sender_name": user.name,
                "text": text[:1000],
                "sent_at": utcnow().isoformat(),
            },
        )
        return recipient

    # -- queries -----------------------------------------------------------

    # PUBLIC_INTERFACE
    def get(self, user: User, ride_id: UUID) -> Ride:
        ride = self._get(ride_id)
        authorize(user, "ride", "view", ride)
        return ride

    # PUBLIC_INTERFACE
    def events(self, user: User, ride_id: UUID) -> List[RideEvent]:
        ride = self.get(user, ride_id)
        return list(
            self.db.scalars(
                select(RideEvent).where(RideEvent.ride_id == ride.id).order_by(RideEvent.created_at.asc())
            ).all()
        )

    # PUBLIC_INTERFACE
    def history(self, user: User, limit: int = HISTORY_LIMIT) -> List[Ride]:
        """Latest rides the user took part in (as driver for drivers, as passenger otherwise)."""
        column = Ride.driver_id if _role(user) == UserRole.driver else Ride.passenger_id
        stmt = select(Ride).where(column == user.id).order_by(desc(Ride.created_at)).limit(limit)
        return list(self.db.scalars(stmt).unique().all())

    # PUBLIC_INTERFACE
    def active(self, user: User) -> Optional[Ride]:
        """The user's current non-terminal ride, if any (latest first)."""
        if _role(user) == UserRole.driver:
            stmt = select(Ride).where(Ride.driver_id == user.id, Ride.status.in_(ACTIVE_FOR_DRIVER))
        else:
            stmt = select(Ride).where(Ride.passenger_id == user.id, Ride.status.in_(ACTIVE_FOR_PASSENGER))
        return self.db.scalars(stmt.order_by(desc(Ride.created_at)).limit(1)).first()

    # PUBLIC_INTERFACE
    def pending(self, user: User, limit: int = PENDING_LIMIT) -> List[Ride]:
        authorize(user, "ride", "pending")
        stmt = (
            select(Ride)
            .where(Ride.status == RideStatus.pending, Ride.driver_id.is_(None))
            .order_by(desc(Ride.created_at))
            .limit(limit)
        )
        return list(self.db.scalars(stmt).unique().all())

    # PUBLIC_INTERFACE
    def available_driver_ids(self) -> List[UUID]:
        stmt = (
            select(Driver.id)
            .join(User, User.id == Driver.id)
            .where(Driver.is_available.is_(True), User.is_active.is_(True))
        )
        return list(self.db.scalars(stmt).all())

    # PUBLIC_INTERFACE
    def nearby_drivers(
        self,
        user: User,
        *,
        lat: float,
        lng: float,
        vehicle_type: VehicleClass,
        max_distance_m: float,
    ) -> List[Tuple[Driver, float]]:
        """Available drivers of vehicle_type within max_distance_m, nearest first."""
        authorize(user, "ride", "nearby_drivers")
        stmt = (
            select(Driver)
            .join(User, User.id == Driver.id)
            .where(
                Driver.is_available.is_(True),
                Driver.vehicle_type == vehicle_type,
                Driver.location_lat.is_not(None),
                Driver.location_lng.is_not(None),
                User.is_active.is_(True),
            )
        )
        radius_km = max_distance_m / 1000.0
        found: List[Tuple[Driver, float]] = []
        for d in self.db.scalars(stmt).unique().all():
            dist = distance_km_haversine(lat, lng, float(d.location_lat), float(d.location_lng))
            if dist <= radius_km:
                found.append((d, dist))
        found.sort(key=lambda pair: pair[1])
        return found

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_api.models.base import Base, JSONType, utcnow
from nova_api.models.user import PaymentMethodType


class RideStatus(str, enum.Enum):
    """
    Ride lifecycle:

    pending -> accepted -> arrived -> started -> completed
    cancelled is reachable from every non-terminal state.
    """

    pending = "pending"
    accepted = "accepted"
    arrived = "arrived"
    started = "started"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({RideStatus.completed, RideStatus.cancelled})


class VehicleClass(str, enum.Enum):
    """Service tiers; each has its own fare rates."""
    economy = "economy"
    premium = "premium"
    suv = "suv"
    bike = "bike"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class Ride(Base):
    """
    ORM model for the `rides` table.

    Party references use SET NULL so deleting an account keeps the trip
    records for the other party and for revenue reporting.
    """

    __tablename__ = "rides"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    passenger_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    driver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    pickup_address: Mapped[str] = mapped_column(Text, nullable=False)
    pickup_lat: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_lng: Mapped[float] = mapped_column(Float, nullable=False)
    dropoff_address: Mapped[str] = mapped_column(Text, nullable=False)
    dropoff_lat: Mapped[float] = mapped_column(Float, nullable=False)
    dropoff_lng: Mapped[float] = mapped_column(Float, nullable=False)

    vehicle_type: Mapped[VehicleClass] = mapped_column(
        Enum(VehicleClass, name="vehicle_class"), nullable=False
    )

    status: Mapped[RideStatus] = mapped_column(
        Enum(RideStatus, name="ride_status"),
        nullable=False,
        default=RideStatus.pending,
        index=True,
    )

    base_fare: Mapped[float] = mapped_column(Float, nullable=False)
    distance_fare: Mapped[float] = mapped_column(Float, nullable=False)
    time_fare: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    surge_fare: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    fare_total: Mapped[float] = mapped_column(Float, nullable=False)

    distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    duration_min: Mapped[float] = mapped_column(Float, nullable=False)

    payment_method: Mapped[PaymentMethodType] = mapped_column(
        Enum(PaymentMethodType, name="payment_method_type"),
        nullable=False,
        default=PaymentMethodType.cash,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.pending,
    )

    # Rating given BY the passenger (to the driver) and BY the driver (to the passenger).
    rating_by_passenger: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review_by_passenger: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating_by_driver: Mapped[int | None] = mapped_column(Integer, nullable=True)
    review_by_driver: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancelled_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    passenger = relationship("User", foreign_keys=[passenger_id], lazy="joined")
    driver = relationship("User", foreign_keys=[driver_id], lazy="joined")
    events = relationship(
        "RideEvent",
        back_populates="ride",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="RideEvent.created_at",
    )


class RideEvent(Base):
    """Append-only audit row written on every lifecycle transition."""

    __tablename__ = "ride_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    ride_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rides.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    event_type: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )

    ride = relationship("Ride", back_populates="events")


# Extra composite indexes to support common list queries efficiently.
Index("idx_rides_passenger_created_at", Ride.passenger_id, Ride.created_at.desc())
Index("idx_rides_driver_created_at", Ride.driver_id, Ride.created_at.desc())
Index("idx_ride_events_ride_created_at", RideEvent.ride_id, RideEvent.created_at.asc())

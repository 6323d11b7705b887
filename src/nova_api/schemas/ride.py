from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from nova_api.models.ride import PaymentStatus, Ride, RideEvent, RideStatus, VehicleClass
from nova_api.models.user import PaymentMethodType, User


class Place(BaseModel):
    address: str = Field(..., min_length=1, max_length=500, description="Human-readable address.")
    lat: float = Field(..., ge=-90, le=90, description="Latitude in degrees.")
    lng: float = Field(..., ge=-180, le=180, description="Longitude in degrees.")

    @field_validator("address")
    @classmethod
    def _address_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Address must not be blank")
        return value


class RideCreateRequest(BaseModel):
    pickup_location: Place = Field(..., description="Where the passenger is picked up.")
    dropoff_location: Place = Field(..., description="Destination.")
    vehicle_type: VehicleClass = Field(..., description="economy, premium, suv or bike.")
    distance_km: float = Field(..., ge=0, le=2000, description="Route distance in kilometres.")
    duration_min: float = Field(..., ge=0, le=24 * 60, description="Estimated duration in minutes.")
    payment_method: PaymentMethodType = Field(PaymentMethodType.cash, description="card, cash or wallet.")


class RideStatusUpdateRequest(BaseModel):
    status: RideStatus = Field(..., description="New ride status. Drivers may set: arrived, started, completed.")


class RideCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500, description="Why the ride was cancelled.")


class RideRateRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5, description="1 (worst) to 5 (best).")
    review: Optional[str] = Field(default=None, max_length=1000)


class NearbyDriversRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90, description="Search center latitude.")
    lng: float = Field(..., ge=-180, le=180, description="Search center longitude.")
    vehicle_type: VehicleClass = Field(..., description="Only drivers of this vehicle class.")
    max_distance_m: float = Field(5000, gt=0, le=50000, description="Search radius in metres.")


class PartySummary(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    avatar: str
    rating: Optional[float] = None


class DriverSummary(PartySummary):
    vehicle_type: Optional[VehicleClass] = None
    vehicle_model: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_color: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None


class FarePublic(BaseModel):
    base_fare: float
    distance_fare: float
    time_fare: float
    surge_fare: float
    total: float


class RideRatingPublic(BaseModel):
    by_passenger: Optional[int] = None
    passenger_review: Optional[str] = None
    by_driver: Optional[int] = None
    driver_review: Optional[str] = None


class RidePublic(BaseModel):
    id: UUID = Field(..., description="Ride id.")
    passenger: Optional[PartySummary] = Field(default=None, description="Passenger who booked the ride.")
    driver: Optional[DriverSummary] = Field(default=None, description="Assigned driver (null while pending).")
    pickup_location: Place
    dropoff_location: Place
    vehicle_type: VehicleClass
    status: RideStatus = Field(..., description="Current ride status.")
    fare: FarePublic
    distance_km: float
    duration_min: float
    payment_method: PaymentMethodType
    payment_status: PaymentStatus
    rating: RideRatingPublic
    cancelled_by: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: datetime = Field(..., description="When the ride was created.")
    updated_at: datetime = Field(..., description="When the ride was last updated.")


class RideEnvelope(BaseModel):
    success: bool = True
    ride: Optional[RidePublic] = None


class RideListEnvelope(BaseModel):
    success: bool = True
    count: int
    rides: List[RidePublic]


class PendingRidesEnvelope(BaseModel):
    success: bool = True
    count: int
    requests: List[RidePublic]


class RideEventPublic(BaseModel):
    id: UUID = Field(..., description="Event id.")
    ride_id: UUID = Field(..., description="Ride id.")
    event_type: str = Field(..., description="Event type string.")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event payload JSON.")
    created_at: datetime = Field(..., description="When event was created.")


class RideEventsEnvelope(BaseModel):
    success: bool = True
    ride_id: UUID
    events: List[RideEventPublic] = Field(..., description="Ordered list of ride events (oldest -> newest).")


class ShareRideResponse(BaseModel):
    success: bool = True
    share_link: str
    trusted_contacts: int = Field(..., description="Trusted contacts the passenger could send the link to.")
    message: str


class NearbyDriver(DriverSummary):
    distance_km: float


class NearbyDriversEnvelope(BaseModel):
    success: bool = True
    count: int
    drivers: List[NearbyDriver]


def _party(user: Optional[User]) -> Optional[PartySummary]:
    if user is None:
        return None
    profile = user.passenger_profile
    return PartySummary(
        id=user.id,
        name=user.name,
        phone=user.phone,
        avatar=user.avatar,
        rating=float(profile.rating) if profile is not None else None,
    )


def driver_summary(user: Optional[User]) -> Optional[DriverSummary]:
    if user is None:
        return None
    profile = user.driver_profile
    if profile is None:
        return DriverSummary(id=user.id, name=user.name, phone=user.phone, avatar=user.avatar)
    return DriverSummary(
        id=user.id,
        name=user.name,
        phone=user.phone,
        avatar=user.avatar,
        rating=float(profile.rating),
        vehicle_type=profile.vehicle_type,
        vehicle_model=profile.vehicle_model,
        vehicle_plate=profile.vehicle_plate,
        vehicle_color=profile.vehicle_color,
        location_lat=profile.location_lat,
        location_lng=profile.location_lng,
    )


def ride_to_public(ride: Ride) -> RidePublic:
    """Convert ORM Ride row (with parties loaded) to public schema."""
    return RidePublic(
        id=ride.id,
        passenger=_party(ride.passenger),
        driver=driver_summary(ride.driver),
        pickup_location=Place(address=ride.pickup_address, lat=ride.pickup_lat, lng=ride.pickup_lng),
        dropoff_location=Place(address=ride.dropoff_address, lat=ride.dropoff_lat, lng=ride.dropoff_lng),
        vehicle_type=ride.vehicle_type,
        status=ride.status,
        fare=FarePublic(
            base_fare=ride.base_fare,
            distance_fare=ride.distance_fare,
            time_fare=ride.time_fare,
            surge_fare=ride.surge_fare,
            total=ride.fare_total,
        ),
        distance_km=ride.distance_km,
        duration_min=ride.duration_min,
        payment_method=ride.payment_method,
        payment_status=ride.payment_status,
        rating=RideRatingPublic(
            by_passenger=ride.rating_by_passenger,
            passenger_review=ride.review_by_passenger,
            by_driver=ride.rating_by_driver,
            driver_review=ride.review_by_driver,
        ),
        cancelled_by=ride.cancelled_by_id,
        cancellation_reason=ride.cancellation_reason,
        start_time=ride.start_time,
        end_time=ride.end_time,
        created_at=ride.created_at,
        updated_at=ride.updated_at,
    )


def event_to_public(ev: RideEvent) -> RideEventPublic:
    """Convert ORM RideEvent row to public schema."""
    return RideEventPublic(
        id=ev.id,
        ride_id=ev.ride_id,
        event_type=ev.event_type,
        payload=dict(ev.payload or {}),
        created_at=ev.created_at,
    )

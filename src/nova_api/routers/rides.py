from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from nova_api.deps import get_current_user, get_ride_service, require
from nova_api.models.user import User
from nova_api.schemas.ride import (
    NearbyDriver,
    NearbyDriversEnvelope,
    NearbyDriversRequest,
    PendingRidesEnvelope,
    RideCancelRequest,
    RideCreateRequest,
    RideEnvelope,
    RideEventsEnvelope,
    RideListEnvelope,
    RideRateRequest,
    RideStatusUpdateRequest,
    ShareRideResponse,
    driver_summary,
    event_to_public,
    ride_to_public,
)
from nova_api.services.rides import RideService

router = APIRouter(prefix="/api/rides", tags=["rides"])


@router.post(
    "",
    response_model=RideEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Request a ride",
    description="Passenger books a ride (status=pending); the fare is computed server-side.",
    operation_id="rides_create",
)
def create_ride(
    payload: RideCreateRequest,
    current_user: User = Depends(require("ride", "create")),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    """
    Create a new ride request and broadcast it to available drivers.

    Auth:
    - Bearer JWT required
    - role must be 'passenger'
    """
    ride = rides.create(current_user, payload)
    return RideEnvelope(ride=ride_to_public(ride))


@router.post(
    "/nearby-drivers",
    response_model=NearbyDriversEnvelope,
    summary="Find nearby drivers",
    description="Available drivers of a vehicle class within a radius, nearest first.",
    operation_id="rides_nearby_drivers",
)
def nearby_drivers(
    payload: NearbyDriversRequest,
    current_user: User = Depends(require("ride", "nearby_drivers")),
    rides: RideService = Depends(get_ride_service),
) -> NearbyDriversEnvelope:
    found = rides.nearby_drivers(
        current_user,
        lat=payload.lat,
        lng=payload.lng,
        vehicle_type=payload.vehicle_type,
        max_distance_m=payload.max_distance_m,
    )
    drivers = [
        NearbyDriver(**driver_summary(d.user).model_dump(), distance_km=round(dist, 3)) for d, dist in found
    ]
    return NearbyDriversEnvelope(count=len(drivers), drivers=drivers)


@router.get(
    "/active",
    response_model=RideEnvelope,
    summary="Current ride",
    description="The caller's non-terminal ride, or ride=null.",
    operation_id="rides_active",
)
def active_ride(
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    ride = rides.active(current_user)
    return RideEnvelope(ride=ride_to_public(ride) if ride else None)


@router.get(
    "/history",
    response_model=RideListEnvelope,
    summary="Ride history",
    description="Latest 50 rides of the caller, newest first.",
    operation_id="rides_history",
)
def ride_history(
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideListEnvelope:
    items = [ride_to_public(r) for r in rides.history(current_user)]
    return RideListEnvelope(count=len(items), rides=items)


@router.get(
    "/pending",
    response_model=PendingRidesEnvelope,
    summary="Open ride requests",
    description="Latest 20 unassigned pending rides for drivers to pick from.",
    operation_id="rides_pending",
)
def pending_rides(
    current_user: User = Depends(require("ride", "pending")),
    rides: RideService = Depends(get_ride_service),
) -> PendingRidesEnvelope:
    items = [ride_to_public(r) for r in rides.pending(current_user)]
    return PendingRidesEnvelope(count=len(items), requests=items)


@router.get(
    "/{ride_id}",
    response_model=RideEnvelope,
    summary="Get ride details",
    description="Passenger, assigned driver, or admin can view a ride.",
    operation_id="rides_get",
)
def get_ride(
    ride_id: UUID,
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    return RideEnvelope(ride=ride_to_public(rides.get(current_user, ride_id)))


@router.get(
    "/{ride_id}/events",
    response_model=RideEventsEnvelope,
    summary="Ride audit trail",
    description="Lifecycle events of a ride, oldest first. Same visibility as the ride itself.",
    operation_id="rides_events",
)
def get_ride_events(
    ride_id: UUID,
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideEventsEnvelope:
    events = rides.events(current_user, ride_id)
    return RideEventsEnvelope(ride_id=ride_id, events=[event_to_public(ev) for ev in events])


@router.put(
    "/{ride_id}/accept",
    response_model=RideEnvelope,
    summary="Accept a ride",
    description="Driver claims a pending ride. Only the first of several concurrent drivers succeeds.",
    operation_id="rides_accept",
)
def accept_ride(
    ride_id: UUID,
    current_user: User = Depends(require("ride", "accept")),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    """
    Accept a pending ride.

    Errors:
    - 400 if the ride was already taken or is no longer pending
    - 404 if the ride does not exist
    """
    return RideEnvelope(ride=ride_to_public(rides.accept(current_user, ride_id)))


@router.put(
    "/{ride_id}/status",
    response_model=RideEnvelope,
    summary="Advance ride status",
    description="Assigned driver moves the ride accepted -> arrived -> started -> completed.",
    operation_id="rides_update_status",
)
def update_ride_status(
    ride_id: UUID,
    payload: RideStatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    return RideEnvelope(ride=ride_to_public(rides.update_status(current_user, ride_id, payload.status)))


@router.put(
    "/{ride_id}/cancel",
    response_model=RideEnvelope,
    summary="Cancel a ride",
    operation_id="rides_cancel",
)
def cancel_ride(
    ride_id: UUID,
    payload: RideCancelRequest | None = None,
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    reason = payload.reason if payload else None
    return RideEnvelope(ride=ride_to_public(rides.cancel(current_user, ride_id, reason)))


@router.post(
    "/{ride_id}/rate",
    response_model=RideEnvelope,
    summary="Rate a completed ride",
    description="Each party rates the other once; the rated user's average is updated.",
    operation_id="rides_rate",
)
def rate_ride(
    ride_id: UUID,
    payload: RideRateRequest,
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> RideEnvelope:
    ride = rides.rate(current_user, ride_id, payload.rating, payload.review)
    return RideEnvelope(ride=ride_to_public(ride))


@router.post(
    "/{ride_id}/share",
    response_model=ShareRideResponse,
    summary="Share ride tracking link",
    operation_id="rides_share",
)
def share_ride(
    ride_id: UUID,
    current_user: User = Depends(get_current_user),
    rides: RideService = Depends(get_ride_service),
) -> ShareRideResponse:
    link, contacts = rides.share(current_user, ride_id)
    if contacts:
        message = "Ride details shared with your trusted contacts"
    else:
        message = "Share this link to let others track your ride"
    return ShareRideResponse(share_link=link, trusted_contacts=contacts, message=message)

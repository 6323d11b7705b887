import uuid

import pytest
from sqlalchemy import select

from conftest import DROPOFF, PICKUP
from nova_api.errors import NotFoundError, PermissionDenied, ValidationError
from nova_api.models.driver import Driver
from nova_api.models.passenger import Passenger
from nova_api.models.ride import PaymentStatus, RideEvent, RideStatus, VehicleClass
from nova_api.models.user import PaymentMethodType, User, UserRole
from nova_api.schemas.ride import RideCreateRequest
from nova_api.services.rides import RideService


def _make_user(db, role: UserRole, available: bool = True) -> User:
    tag = uuid.uuid4().hex[:8]
    user = User(
        name=f"{role.value} {tag}",
        email=f"{tag}@nova.rw",
        phone=f"+250{tag}",
        password_hash="x",
        role=role,
    )
    db.add(user)
    db.flush()
    if role == UserRole.driver:
        user.driver_profile = Driver(
            id=user.id,
            vehicle_type=VehicleClass.economy,
            is_available=available,
            location_lat=-1.95,
            location_lng=30.09,
        )
    elif role == UserRole.passenger:
        user.passenger_profile = Passenger(id=user.id)
    db.commit()
    return user


def _request(**overrides) -> RideCreateRequest:
    body = {
        "pickup_location": PICKUP,
        "dropoff_location": DROPOFF,
        "vehicle_type": "economy",
        "distance_km": 5,
        "duration_min": 15,
    }
    body.update(overrides)
    return RideCreateRequest(**body)


@pytest.fixture
def service(db, notifier):
    return RideService(db, notifier)


@pytest.fixture
def rider(db):
    return _make_user(db, UserRole.passenger)


@pytest.fixture
def chauffeur(db):
    return _make_user(db, UserRole.driver)


def _driver_profile(db, user: User) -> Driver:
    db.expire_all()
    return db.scalar(select(Driver).where(Driver.id == user.id))


def test_create_prices_the_ride_and_notifies_available_drivers(db, service, notifier, rider, chauffeur):
    busy = _make_user(db, UserRole.driver, available=False)

    ride = service.create(rider, _request())

    assert ride.status == RideStatus.pending
    assert ride.driver_id is None
    assert ride.fare_total == 10.63
    assert ride.payment_method == PaymentMethodType.cash
    [(targets, event, payload)] = notifier.calls
    assert event == "newRideRequest"
    assert targets == [chauffeur.id]
    assert busy.id not in targets
    assert payload["id"] == str(ride.id)
    assert payload["fare"]["total"] == 10.63


def test_drivers_cannot_request_rides(service, chauffeur):
    with pytest.raises(PermissionDenied):
        service.create(chauffeur, _request())


def test_second_accept_loses(db, service, notifier, rider, chauffeur):
    other = _make_user(db, UserRole.driver)
    ride = service.create(rider, _request())

    accepted = service.accept(chauffeur, ride.id)
    assert accepted.status == RideStatus.accepted
    assert accepted.driver_id == chauffeur.id

    with pytest.raises(ValidationError, match="Ride is no longer available"):
        service.accept(other, ride.id)

    assert service.get(rider, ride.id).driver_id == chauffeur.id
    assert _driver_profile(db, chauffeur).is_available is False
    assert [c[0] for c in notifier.events("rideAccepted")] == [[rider.id]]


def test_accept_unknown_ride_is_not_found(service, chauffeur):
    with pytest.raises(NotFoundError):
        service.accept(chauffeur, uuid.uuid4())


def test_only_assigned_driver_updates_status(db, service, rider, chauffeur):
    other = _make_user(db, UserRole.driver)
    ride = service.create(rider, _request())
    service.accept(chauffeur, ride.id)

    with pytest.raises(PermissionDenied):
        service.update_status(other, ride.id, RideStatus.arrived)
    with pytest.raises(PermissionDenied):
        service.update_status(rider, ride.id, RideStatus.arrived)


def test_status_moves_one_step_at_a_time(service, rider, chauffeur):
    ride = service.create(rider, _request())
    service.accept(chauffeur, ride.id)

    with pytest.raises(ValidationError, match="Invalid status transition from 'accepted' to 'completed'"):
        service.update_status(chauffeur, ride.id, RideStatus.completed)
    with pytest.raises(ValidationError, match="Status must be one of"):
        service.update_status(chauffeur, ride.id, RideStatus.cancelled)

    assert service.update_status(chauffeur, ride.id, RideStatus.arrived).status == RideStatus.arrived
    started = service.update_status(chauffeur, ride.id, RideStatus.started)
    assert started.start_time is not None

    with pytest.raises(ValidationError, match="Invalid status transition"):
        service.update_status(chauffeur, ride.id, RideStatus.arrived)


def test_cash_ride_completion_updates_aggregates(db, service, notifier, rider, chauffeur):
    ride = service.create(rider, _request())
    service.accept(chauffeur, ride.id)
    for step in (RideStatus.arrived, RideStatus.started, RideStatus.completed):
        service.update_status(chauffeur, ride.id, step)

    done = service.get(rider, ride.id)
    assert done.status == RideStatus.completed
    assert done.end_time is not None
    assert done.payment_status == PaymentStatus.completed

    profile = _driver_profile(db, chauffeur)
    assert profile.total_rides == 1
    assert profile.earnings == pytest.approx(10.63)
    assert profile.is_available is True
    passenger_profile = db.scalar(select(Passenger).where(Passenger.id == rider.id))
    assert passenger_profile.total_rides == 1

    statuses = [c[2]["status"] for c in notifier.events("rideStatusUpdated")]
    assert statuses == ["arrived", "started", "completed"]

    events = db.scalars(select(RideEvent.event_type).where(RideEvent.ride_id == ride.id)).all()
    assert sorted(events) == sorted(
        ["ride_created", "ride_accepted", "status_changed", "status_changed", "status_changed"]
    )


def test_card_ride_payment_stays_pending(service, rider, chauffeur):
    ride = service.create(rider, _request(payment_method="card"))
    service.accept(chauffeur, ride.id)
    for step in (RideStatus.arrived, RideStatus.started, RideStatus.completed):
        service.update_status(chauffeur, ride.id, step)
    assert service.get(rider, ride.id).payment_status == PaymentStatus.pending


def test_passenger_cancels_pending_ride(service, notifier, rider):
    ride = service.create(rider, _request())
    cancelled = service.cancel(rider, ride.id, "Changed my mind")
    assert cancelled.status == RideStatus.cancelled
    assert cancelled.cancelled_by_id == rider.id
    assert cancelled.cancellation_reason == "Changed my mind"
    # no driver yet, so nobody to tell
    assert notifier.events("rideCancelled") == []


def test_driver_cancel_frees_driver_and_tells_passenger(db, service, notifier, rider, chauffeur):
    ride = service.create(rider, _request())
    service.accept(chauffeur, ride.id)
    service.cancel(chauffeur, ride.id)

    assert _driver_profile(db, chauffeur).is_available is True
    [(targets, _, payload)] = notifier.events("rideCancelled")
    assert targets == [rider.id]
    assert payload["status"] == "cancelled"


def test_terminal_rides_cannot_be_cancelled(service, rider):
    ride = service.create(rider, _request())
    service.cancel(rider, ride.id)
    with pytest.raises(ValidationError, match="Cannot cancel this ride"):
        service.cancel(rider, ride.id)


def test_strangers_cannot_cancel(db, service, rider):
    stranger = _make_user(db, UserRole.passenger)
    ride = service.create(rider, _request())
    with pytest.raises(PermissionDenied):
        service.cancel(stranger, ride.id)


def _completed_ride(service, rider, chauffeur):
    ride = service.create(rider, _request())
    service.accept(chauffeur, ride.id)
    for step in (RideStatus.arrived, RideStatus.started, RideStatus.completed):
        service.update_status(chauffeur, ride.id, step)
    return ride


def test_rating_updates_mean_of_received_ratings(db, service, rider, chauffeur):
    first = _completed_ride(service, rider, chauffeur)
    second = _completed_ride(service, rider, chauffeur)

    service.rate(rider, first.id, 5, "Great")
    service.rate(rider, second.id, 4)
    assert _driver_profile(db, chauffeur).rating == 4.5

    service.rate(chauffeur, first.id, 3)
    db.expire_all()
    assert db.scalar(select(Passenger.rating).where(Passenger.id == rider.id)) == 3.0


def test_each_party_rates_once(service, rider, chauffeur):
    ride = _completed_ride(service, rider, chauffeur)
    service.rate(rider, ride.id, 5)
    with pytest.raises(ValidationError, match="You have already rated this ride"):
        service.rate(rider, ride.id, 1)


def test_only_completed_rides_can_be_rated(service, rider, chauffeur):
    ride = service.create(rider, _request())
    with pytest.raises(ValidationError, match="Can only rate completed rides"):
        service.rate(rider, ride.id, 5)


def test_rating_must_be_in_range(service, rider, chauffeur):
    ride = _completed_ride(service, rider, chauffeur)
    with pytest.raises(ValidationError):
        service.rate(rider, ride.id, 6)


def test_active_history_and_pending(db, service, rider, chauffeur):
    assert service.active(rider) is None
    ride = service.create(rider, _request())
    assert service.active(rider).id == ride.id
    assert service.active(chauffeur) is None
    assert [r.id for r in service.pending(chauffeur)] == [ride.id]

    service.accept(chauffeur, ride.id)
    assert service.pending(chauffeur) == []
    assert service.active(chauffeur).id == ride.id
    assert [r.id for r in service.history(rider)] == [ride.id]
    assert [r.id for r in service.history(chauffeur)] == [ride.id]


def test_nearby_drivers_filters_by_class_and_radius(db, service, rider, chauffeur):
    far = _make_user(db, UserRole.driver)
    far.driver_profile.location_lat = -2.5
    suv = _make_user(db, UserRole.driver)
    suv.driver_profile.vehicle_type = VehicleClass.suv
    db.commit()

    found = service.nearby_drivers(
        rider, lat=PICKUP["lat"], lng=PICKUP["lng"], vehicle_type=VehicleClass.economy, max_distance_m=5000
    )
    assert [d.id for d, _ in found] == [chauffeur.id]
    assert found[0][1] < 5


def test_relay_message_goes_to_the_other_party(service, notifier, rider, chauffeur):
    ride = service.create(rider, _request())
    with pytest.raises(ValidationError, match="No one to message"):
        service.relay_message(rider, ride.id, "hello?")

    service.accept(chauffeur, ride.id)
    assert service.relay_message(rider, ride.id, "I'm at the gate") == chauffeur.id
    [(targets, _, payload)] = notifier.events("receiveMessage")
    assert targets == [chauffeur.id]
    assert payload["text"] == "I'm at the gate"
    assert payload["sender_id"] == str(rider.id)

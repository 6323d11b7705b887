import uuid
from types import SimpleNamespace

import pytest

from nova_api.errors import PermissionDenied
from nova_api.models.user import UserRole
from nova_api.policy import RULES, authorize, is_allowed


def _user(role: UserRole):
    return SimpleNamespace(id=uuid.uuid4(), role=role)


@pytest.fixture
def parties():
    passenger = _user(UserRole.passenger)
    driver = _user(UserRole.driver)
    ride = SimpleNamespace(passenger_id=passenger.id, driver_id=driver.id)
    return passenger, driver, ride


def test_only_passengers_create_rides():
    assert is_allowed(_user(UserRole.passenger), "ride", "create")
    assert not is_allowed(_user(UserRole.driver), "ride", "create")
    assert not is_allowed(_user(UserRole.admin), "ride", "create")


def test_role_only_denial_names_the_required_role():
    with pytest.raises(PermissionDenied, match="Passenger role required."):
        authorize(_user(UserRole.driver), "ride", "create")
    with pytest.raises(PermissionDenied, match="Driver role required."):
        authorize(_user(UserRole.passenger), "ride", "accept")


def test_view_is_limited_to_parties_and_admins(parties):
    passenger, driver, ride = parties
    assert is_allowed(passenger, "ride", "view", ride)
    assert is_allowed(driver, "ride", "view", ride)
    assert is_allowed(_user(UserRole.admin), "ride", "view", ride)
    assert not is_allowed(_user(UserRole.passenger), "ride", "view", ride)
    assert not is_allowed(_user(UserRole.driver), "ride", "view", ride)


def test_only_the_assigned_driver_advances(parties):
    passenger, driver, ride = parties
    assert is_allowed(driver, "ride", "advance", ride)
    with pytest.raises(PermissionDenied, match="Not authorized"):
        authorize(_user(UserRole.driver), "ride", "advance", ride)
    assert not is_allowed(passenger, "ride", "advance", ride)


def test_unassigned_ride_has_no_driver_party(parties):
    passenger, driver, _ = parties
    pending = SimpleNamespace(passenger_id=passenger.id, driver_id=None)
    assert not is_allowed(driver, "ride", "cancel", pending)
    assert is_allowed(passenger, "ride", "cancel", pending)


def test_admins_cannot_cancel_or_rate(parties):
    _, _, ride = parties
    admin = _user(UserRole.admin)
    assert not is_allowed(admin, "ride", "cancel", ride)
    assert not is_allowed(admin, "ride", "rate", ride)


def test_management_rules():
    assert is_allowed(_user(UserRole.driver), "driver", "manage")
    assert not is_allowed(_user(UserRole.passenger), "driver", "manage")
    assert is_allowed(_user(UserRole.admin), "admin", "manage")
    with pytest.raises(PermissionDenied, match="Admin role required."):
        authorize(_user(UserRole.driver), "admin", "manage")


def test_unknown_rule_is_a_programming_error():
    with pytest.raises(KeyError):
        is_allowed(_user(UserRole.admin), "ride", "teleport")


def test_every_rule_names_at_least_one_role():
    assert all(RULES.values())

"""
Authorization capability table.

Every permission is looked up by (resource, action) and the caller's role.
A rule is a predicate over (user, target); target is the object being acted
on (usually a Ride) and may be None when only the role matters, e.g. for
the route-level check done by deps.require().
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

from nova_api.errors import PermissionDenied
from nova_api.models.user import User, UserRole

Rule = Callable[[User, Any], bool]


def _always(user: User, target: Any) -> bool:
    return True


def _is_ride_passenger(user: User, ride: Any) -> bool:
    return ride is None or ride.passenger_id == user.id


def _is_ride_driver(user: User, ride: Any) -> bool:
    return ride is None or (ride.driver_id is not None and ride.driver_id == user.id)


RULES: Dict[Tuple[str, str], Dict[UserRole, Rule]] = {
    ("ride", "create"): {UserRole.passenger: _always},
    ("ride", "nearby_drivers"): {UserRole.passenger: _always},
    ("ride", "view"): {
        UserRole.passenger: _is_ride_passenger,
        UserRole.driver: _is_ride_driver,
        UserRole.admin: _always,
    },
    ("ride", "accept"): {UserRole.driver: _always},
    ("ride", "pending"): {UserRole.driver: _always},
    ("ride", "advance"): {UserRole.driver: _is_ride_driver},
    ("ride", "cancel"): {
        UserRole.passenger: _is_ride_passenger,
        UserRole.driver: _is_ride_driver,
    },
    ("ride", "rate"): {
        UserRole.passenger: _is_ride_passenger,
        UserRole.driver: _is_ride_driver,
    },
    ("ride", "share"): {UserRole.passenger: _is_ride_passenger},
    ("ride", "message"): {
        UserRole.passenger: _is_ride_passenger,
        UserRole.driver: _is_ride_driver,
    },
    ("driver", "manage"): {UserRole.driver: _always},
    ("admin", "manage"): {UserRole.admin: _always},
}

_ROLE_LABELS = {
    UserRole.passenger: "Passenger",
    UserRole.driver: "Driver",
    UserRole.admin: "Admin",
}


def _role_of(user: User) -> UserRole:
    return user.role if isinstance(user.role, UserRole) else UserRole(str(user.role))


# PUBLIC_INTERFACE
def is_allowed(user: User, resource: str, action: str, target: Optional[Any] = None) -> bool:
    """Return whether user may perform action on resource (and target, if given)."""
    rules = RULES.get((resource, action))
    if rules is None:
        raise KeyError(f"No authorization rule for {resource}.{action}")
    rule = rules.get(_role_of(user))
    if rule is None:
        return False
    return rule(user, target)


# PUBLIC_INTERFACE
def authorize(user: User, resource: str, action: str, target: Optional[Any] = None) -> None:
    """
    Raise PermissionDenied unless user may perform action.

    With target=None only the role is checked; the message then names the
    role(s) that are allowed.
    """
    if is_allowed(user, resource, action, target):
        return
    rules = RULES[(resource, action)]
    if target is None or _role_of(user) not in rules:
        roles = " or ".join(_ROLE_LABELS[r] for r in rules)
        raise PermissionDenied(f"{roles} role required.")
    raise PermissionDenied("Not authorized")

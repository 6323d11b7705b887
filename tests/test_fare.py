import pytest

from nova_api.fare import BASE_FARES, compute_fare, round_money
from nova_api.models.ride import VehicleClass


def test_economy_five_km_fifteen_minutes():
    fare = compute_fare(5, VehicleClass.economy, 15)
    assert fare.base_fare == 3.0
    assert fare.distance_fare == 7.5
    assert fare.time_fare == 0.13
    assert fare.surge_fare == 0.0
    # 3 + 7.5 + 0.125 rounds half-up
    assert fare.total == 10.63


def test_accepts_vehicle_class_as_string():
    assert compute_fare(10, "premium", 30).total == 5.0 + 25.0 + 0.25


@pytest.mark.parametrize("vehicle", list(VehicleClass))
def test_zero_trip_costs_the_base_fare(vehicle):
    fare = compute_fare(0, vehicle, 0)
    assert fare.total == BASE_FARES[vehicle]
    assert fare.distance_fare == 0
    assert fare.time_fare == 0


@pytest.mark.parametrize("vehicle", list(VehicleClass))
def test_fare_grows_with_distance_and_duration(vehicle):
    shorter = compute_fare(4, vehicle, 10).total
    assert compute_fare(8, vehicle, 10).total > shorter
    assert compute_fare(4, vehicle, 70).total > shorter


def test_class_ordering_for_same_trip():
    totals = {v: compute_fare(12, v, 25).total for v in VehicleClass}
    assert totals[VehicleClass.bike] < totals[VehicleClass.economy] < totals[VehicleClass.premium] < totals[VehicleClass.suv]


def test_unknown_vehicle_class_is_rejected():
    with pytest.raises(ValueError, match="Unknown vehicle class"):
        compute_fare(5, "limousine", 15)


def test_negative_inputs_are_rejected():
    with pytest.raises(ValueError):
        compute_fare(-1, VehicleClass.economy, 10)
    with pytest.raises(ValueError):
        compute_fare(1, VehicleClass.economy, -10)


def test_breakdown_as_dict():
    assert compute_fare(5, VehicleClass.economy, 15).as_dict() == {
        "base_fare": 3.0,
        "distance_fare": 7.5,
        "time_fare": 0.13,
        "surge_fare": 0.0,
        "total": 10.63,
    }


def test_round_money_is_half_up():
    assert round_money(2.675) == 2.68
    assert round_money(0.125) == 0.13
    assert round_money(1.004) == 1.0

"""
Fare calculation.

Linear pricing: a per-class base fare, a per-class rate per kilometre and a
single per-hour time rate. Surge pricing is not implemented; surge_fare is
always zero.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Union

from nova_api.models.ride import VehicleClass

BASE_FARES: Dict[VehicleClass, float] = {
    VehicleClass.economy: 3.0,
    VehicleClass.premium: 5.0,
    VehicleClass.suv: 7.0,
    VehicleClass.bike: 2.0,
}

PER_KM_RATES: Dict[VehicleClass, float] = {
    VehicleClass.economy: 1.5,
    VehicleClass.premium: 2.5,
    VehicleClass.suv: 3.0,
    VehicleClass.bike: 1.0,
}

PER_HOUR_RATE = 0.5


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: float
    distance_fare: float
    time_fare: float
    surge_fare: float
    total: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def round_money(amount: float) -> float:
    """Round half-up to cents (10.625 -> 10.63, unlike round())."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# PUBLIC_INTERFACE
def compute_fare(
    distance_km: float,
    vehicle_class: Union[VehicleClass, str],
    duration_min: float,
) -> FareBreakdown:
    """
    Compute the fare breakdown for a trip.

    Raises:
        ValueError: unknown vehicle class, or negative distance/duration.
    """
    try:
        vehicle = VehicleClass(vehicle_class)
    except ValueError:
        raise ValueError(f"Unknown vehicle class: {vehicle_class!r}")
    if distance_km < 0 or duration_min < 0:
        raise ValueError("Distance and duration must be non-negative.")

    base_fare = BASE_FARES[vehicle]
    distance_fare = distance_km * PER_KM_RATES[vehicle]
    time_fare = (duration_min / 60) * PER_HOUR_RATE
    surge_fare = 0.0

    return FareBreakdown(
        base_fare=base_fare,
        distance_fare=round_money(distance_fare),
        time_fare=round_money(time_fare),
        surge_fare=surge_fare,
        total=round_money(base_fare + distance_fare + time_fare + surge_fare),
    )

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional


@dataclass
class Aggregate:
    min_time: int
    max_time: int
    avg_time: int
    change: Optional[int]  # None on the first measurement


def round_half_away_from_zero(value: Decimal) -> int:
    # Decimal's ROUND_HALF_UP rounds ties away from zero in both directions
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def mean_travel_time(travel_times: Iterable[int]) -> int:
    """Rounded arithmetic mean of a route's recorded travel times."""
    values = list(travel_times)
    if not values:
        raise ValueError("Cannot average an empty travel time history")
    return round_half_away_from_zero(Decimal(sum(values)) / Decimal(len(values)))


def aggregate(route, new_travel_time: int, travel_times: Iterable[int]) -> Aggregate:
    """
    Fold a new measurement into a route's running statistics.

    Args:
        route: Route (or anything with current_time/min_time/max_time) as it was
            before this measurement
        new_travel_time: The measurement just taken, in minutes
        travel_times: Every travel time recorded for the route, including
            new_travel_time. The average is recomputed over all of them.

    Returns:
        Aggregate with min/max/avg and the signed change vs. route.current_time
    """
    previous = route.current_time
    change = new_travel_time - previous if previous is not None else None

    min_time = new_travel_time if route.min_time is None else min(route.min_time, new_travel_time)
    max_time = new_travel_time if route.max_time is None else max(route.max_time, new_travel_time)

    return Aggregate(
        min_time=min_time,
        max_time=max_time,
        avg_time=mean_travel_time(travel_times),
        change=change,
    )

"""
Distance calculation tool.

This module provides functions to calculate distance and travel time
between two activity locations.
"""

import logging
import math
from typing import Optional

from ..schemas.trip import Coordinates

logger = logging.getLogger(__name__)

# Average minutes per km by mode, including stops
TRANSIT_MINUTES_PER_KM = {
    "walk": 15.0,
    "metro": 3.0,
    "bus": 4.0,
    "taxi": 2.5,
    "car": 2.5,
    "train": 1.5,
}

# Assumed transit time when either end has no coordinates
UNKNOWN_TRANSIT_MINUTES = 15

# Waiting / walking to the station for anything but walking
TRANSIT_OVERHEAD_MINUTES = 10


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    R = 6371.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def select_transit_mode(distance_km: float, stated_mode: Optional[str], walking_threshold_km: float = 2.0) -> str:
    """
    Pick the mode actually used for a hop.

    Short hops are walked regardless of the stated mode; longer hops honour a
    stated metro/subway or train, otherwise fall back to taxi or metro.
    """
    if distance_km <= walking_threshold_km:
        return "walk"

    mode = (stated_mode or "walk").lower()
    if distance_km < 5:
        return "metro" if ("metro" in mode or "subway" in mode) else "taxi"
    if distance_km < 20:
        return "train" if "train" in mode else "metro"
    return "train"


def estimate_transit_minutes(
    origin: Optional[Coordinates],
    destination: Optional[Coordinates],
    stated_mode: Optional[str] = None,
    walking_threshold_km: float = 2.0,
) -> int:
    """
    Estimate travel time between two activity locations.

    Args:
        origin: Coordinates of the earlier activity
        destination: Coordinates of the next activity
        stated_mode: Transport mode named by the itinerary, if any
        walking_threshold_km: Distance up to which the hop is walked

    Returns:
        Estimated travel time in whole minutes
    """
    if origin is None or destination is None:
        return UNKNOWN_TRANSIT_MINUTES

    distance_km = haversine_distance(origin.lat, origin.lng, destination.lat, destination.lng)
    mode = select_transit_mode(distance_km, stated_mode, walking_threshold_km)

    minutes = math.ceil(distance_km * TRANSIT_MINUTES_PER_KM[mode])
    if mode != "walk":
        minutes += TRANSIT_OVERHEAD_MINUTES

    logger.debug(f"Distance: {distance_km:.2f} km by {mode}, travel time: {minutes} min")
    return minutes

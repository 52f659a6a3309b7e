"""Great-circle distance helpers for catalog location filtering."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from marketsync.core.models import Product

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoRadius:
    """A circle on the earth's surface used as a catalog filter."""

    latitude: float
    longitude: float
    radius_km: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute the haversine distance between two points.

    Args:
        lat1: Latitude of the first point in degrees.
        lon1: Longitude of the first point in degrees.
        lat2: Latitude of the second point in degrees.
        lon2: Longitude of the second point in degrees.

    Returns:
        Distance in kilometers.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def filter_by_distance(products: Iterable[Product], area: GeoRadius) -> list[Product]:
    """Keep products whose location lies within the given radius.

    Order of the input is preserved.
    """
    return [
        product
        for product in products
        if haversine_km(
            area.latitude,
            area.longitude,
            product.location.latitude,
            product.location.longitude,
        )
        <= area.radius_km
    ]

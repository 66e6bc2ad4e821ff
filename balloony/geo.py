"""
Geographic helpers: geofencing and nearest-point search.

Distances are in statute miles since every annotation we emit
("within 10 miles of a launch site", "landing near X") is in miles.
"""

import json
import logging
import math
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from balloony.errors import EmptyPointSetError
from balloony.models import Point

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8
FEET_PER_METER = 3.28084


def meters_to_feet(meters: float) -> float:
    return meters * FEET_PER_METER


def inside_poly(point: Sequence[float], ring: Sequence[Sequence[float]]) -> bool:
    """
    Ray-casting point-in-polygon test.

    `point` is (x, y) and `ring` a list of (x, y) vertices; the ring does
    not need to repeat its first vertex. For our boundaries x is longitude
    and y is latitude.
    """
    x, y = point[0], point[1]
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


class Geofence:
    """
    Area of interest for alerts.

    With bypass enabled every location is accepted, which is only meant
    for testing outside of the usual launch hours.
    """

    def __init__(self, ring: Sequence[Tuple[float, float]], bypass: bool = False):
        if not bypass and len(ring) < 3:
            raise ValueError('Boundary needs at least 3 vertices')
        self.ring = list(ring)
        self.bypass = bypass

    def contains(self, lat: float, lon: float) -> bool:
        if self.bypass:
            return True
        return inside_poly((lon, lat), self.ring)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in miles."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def find_closest_point(lat: float, lon: float, points: Iterable[Point]) -> Tuple[Point, float]:
    """
    Return the point closest to (lat, lon) and its distance in miles.

    Ties keep the first point encountered.
    """
    closest: Optional[Point] = None
    min_dist = math.inf
    for p in points:
        dist = haversine_miles(lat, lon, p.lat, p.lon)
        if dist < min_dist:
            min_dist = dist
            closest = p
    if closest is None:
        raise EmptyPointSetError('no points provided')
    return closest, min_dist


class ProximityIndex:
    """
    Nearest-point search over a fixed point set.

    Coordinates are held as NumPy arrays so a query against a few thousand
    receivers is one vectorized haversine pass instead of a Python loop.
    The index is immutable; refreshing means building a new one.
    """

    def __init__(self, points: Iterable[Point]):
        self.points: List[Point] = list(points)
        self._lat = np.radians(np.array([p.lat for p in self.points], dtype=float))
        self._lon = np.radians(np.array([p.lon for p in self.points], dtype=float))

    def __len__(self) -> int:
        return len(self.points)

    def distances(self, lat: float, lon: float) -> np.ndarray:
        """Distance in miles from (lat, lon) to every point, in order."""
        lat_rad = math.radians(lat)
        lon_rad = math.radians(lon)
        a = (
            np.sin((self._lat - lat_rad) / 2) ** 2 +
            math.cos(lat_rad) * np.cos(self._lat) *
            np.sin((self._lon - lon_rad) / 2) ** 2
        )
        c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
        return EARTH_RADIUS_MILES * c

    def closest(self, lat: float, lon: float) -> Tuple[Point, float]:
        """
        Return the closest point and its distance in miles.

        np.argmin returns the first minimum, matching find_closest_point.
        """
        if not self.points:
            raise EmptyPointSetError('no points provided')
        dists = self.distances(lat, lon)
        idx = int(np.argmin(dists))
        return self.points[idx], float(dists[idx])


def load_launch_sites(path) -> List[Point]:
    """
    Load launch sites from a SondeHub style sites JSON file.

    The file maps a site id to {"position": [lon, lat], "station_name": ...}.
    Entries without a two-element position are skipped.
    """
    with Path(path).open('r', encoding='utf-8') as f:
        raw = json.load(f)

    points = []
    for site in raw.values():
        position = site.get('position') if isinstance(site, dict) else None
        if not position or len(position) != 2:
            continue
        points.append(Point(
            lat=float(position[1]),
            lon=float(position[0]),
            name=site.get('station_name', ''),
        ))

    logger.info(f'Loaded {len(points)} launch sites from {path}')
    return points

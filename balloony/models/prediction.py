"""
Landing prediction model.

SondeHub predictions carry the predicted path as a JSON string inside
JSON ('data'); its last sample is the landing point and time.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


@dataclass
class PathSample:
    """One point on a predicted flight path."""
    lat: float
    lon: float
    time: float
    alt: Optional[float] = None


@dataclass
class Prediction:
    """
    Landing prediction for a sonde.

    latitude/longitude/time describe the predicted landing, taken from
    the final path sample.
    """
    vehicle: str
    latitude: float
    longitude: float
    time: datetime
    path: List[PathSample] = field(default_factory=list)
    descending: bool = False
    landed: bool = False
    burst_altitude: Optional[float] = None

    @classmethod
    def from_result(cls, result: dict) -> 'Prediction':
        """
        Build from one SondeHub prediction result.

        Raises ValueError if the embedded path data is missing or invalid.
        """
        samples = json.loads(result.get('data') or '[]')
        if not isinstance(samples, list) or not samples:
            raise ValueError('no prediction data points found in data field')

        path = [
            PathSample(
                lat=float(s['lat']),
                lon=float(s['lon']),
                time=float(s['time']),
                alt=s.get('alt'),
            )
            for s in samples
        ]
        last = path[-1]

        return cls(
            vehicle=result.get('vehicle', ''),
            latitude=last.lat,
            longitude=last.lon,
            time=datetime.fromtimestamp(int(last.time), tz=timezone.utc),
            path=path,
            descending=bool(result.get('descending')),
            landed=bool(result.get('landed')),
            burst_altitude=result.get('burst_altitude'),
        )

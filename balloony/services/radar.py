"""
Radar.io reverse geocoding.

Turns a coordinate into a short, human label for notifications:
"City, ST", or "County County, ST" for rural areas where Radar has no
city. Labels are US-centric since the state code is always used.
"""

import logging
from typing import Optional

import requests

from balloony.config import config
from balloony.errors import LookupFailure

logger = logging.getLogger(__name__)

LOCATION_NOT_FOUND = 'Location not found'


def location_label(response: dict) -> str:
    """Pick a display label from a Radar reverse geocode response."""
    addresses = response.get('addresses') or []
    if not addresses:
        return LOCATION_NOT_FOUND

    first = addresses[0]
    state = first.get('stateCode', '')
    if first.get('city'):
        return f"{first['city']}, {state}"
    if first.get('county'):
        return f"{first['county']} County, {state}"
    return ''


class RadarClient:
    """Client for the Radar.io reverse geocode endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = 'https://api.radar.io/v1',
        timeout: float = 10,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    @classmethod
    def from_config(cls) -> 'RadarClient':
        return cls(api_key=config.radar.api_key, base_url=config.radar.base_url)

    def reverse_geocode(self, lat: float, lon: float) -> dict:
        """Raw reverse geocode response for (lat, lon)."""
        if not self.api_key:
            raise LookupFailure('RADAR_API_KEY not set in environment')

        try:
            response = self.session.get(
                f'{self.base_url}/geocode/reverse',
                params={'coordinates': f'{lat:f},{lon:f}', 'layers': ''},
                headers={'Authorization': self.api_key},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise LookupFailure(f'Radar request failed: {e}') from e

        if response.status_code != 200:
            raise LookupFailure(f'Radar API error: {response.status_code}')

        try:
            return response.json()
        except ValueError as e:
            raise LookupFailure(f'Radar returned invalid JSON: {e}') from e

    def lookup(self, lat: float, lon: float) -> str:
        """Display label for (lat, lon)."""
        return location_label(self.reverse_geocode(lat, lon))

"""
SondeHub API client.

Handles the two REST lookups the alert pipeline needs:
- /predictions?vehicles=<serial>  landing prediction for one sonde
- /listeners/telemetry            current receiver (listener) positions

Failures of either call are raised as LookupFailure.
"""

import logging
from typing import List, Optional

import requests

from balloony.config import config
from balloony.errors import LookupFailure
from balloony.models import Point, Prediction

logger = logging.getLogger(__name__)


class SondeHubClient:
    """Client for the SondeHub v2 REST API."""

    def __init__(self, base_url: str = 'https://api.v2.sondehub.org', timeout: float = 30):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    @classmethod
    def from_config(cls) -> 'SondeHubClient':
        return cls(base_url=config.sondehub.api_url)

    def _get_json(self, path: str, params: Optional[dict] = None):
        url = f'{self.base_url}{path}'
        logger.debug(f'Fetching {url} params={params}')
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise LookupFailure(f'SondeHub API returned status {e.response.status_code} for {path}') from e
        except requests.exceptions.RequestException as e:
            raise LookupFailure(f'SondeHub request failed for {path}: {e}') from e
        except ValueError as e:
            raise LookupFailure(f'SondeHub returned invalid JSON for {path}: {e}') from e

    def get_prediction(self, serial: str) -> Prediction:
        """Fetch the landing prediction for `serial`."""
        results = self._get_json('/predictions', params={'vehicles': serial})
        if not results:
            raise LookupFailure(f'No prediction results found for serial: {serial}')

        try:
            return Prediction.from_result(results[0])
        except (ValueError, KeyError, TypeError) as e:
            raise LookupFailure(f'Failed to decode prediction for {serial}: {e}') from e

    def get_receivers(self) -> List[Point]:
        """
        Fetch receiver positions.

        The response maps callsign -> {timestamp: {uploader_position: [lat, lon, alt]}};
        only the first entry per callsign is used.
        """
        raw = self._get_json('/listeners/telemetry')
        if not isinstance(raw, dict):
            raise LookupFailure('Unexpected receivers response format')

        points = []
        for name, entries in raw.items():
            if not isinstance(entries, dict):
                continue
            for entry in entries.values():
                position = entry.get('uploader_position') if isinstance(entry, dict) else None
                if position and len(position) >= 2 and None not in position[:2]:
                    points.append(Point(lat=float(position[0]), lon=float(position[1]), name=name))
                break

        return points

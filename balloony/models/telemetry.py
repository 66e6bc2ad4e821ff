"""
Telemetry record and point types.

A TelemetryRecord is one SondeHub packet, normalized into a typed,
immutable dataclass. Only the fields the alert pipeline uses are kept;
SondeHub packets carry many more (temperature, humidity, SNR, ...).
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

INTERMET_MANUFACTURER = 'Intermet Systems'

_FRACTION_RE = re.compile(r'\.(\d+)')


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a SondeHub ISO-8601 timestamp into an aware UTC datetime.

    SondeHub emits a trailing 'Z' and a variable number of fractional
    digits, so both are normalized before handing off to fromisoformat.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip().replace('Z', '+00:00')
    text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class TelemetryRecord:
    """
    One reported position/state of a sonde.

    Many records may describe the same sonde within one batch, one per
    receiving station. `frame` increases with every transmission.
    """
    serial: str
    type: str
    subtype: str
    manufacturer: str
    time_received: datetime
    datetime: Optional[datetime]
    lat: float
    lon: float
    alt: float
    vel_v: float
    vel_h: float
    heading: float
    frequency: float
    uploader_callsign: str
    frame: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['TelemetryRecord']:
        """
        Parse a SondeHub packet dict into a TelemetryRecord.

        Returns None if the packet is malformed or has no serial.
        """
        if not isinstance(data, dict):
            return None

        serial = data.get('serial')
        if not serial or not isinstance(serial, str):
            return None

        reported = parse_timestamp(data.get('datetime'))
        # Fall back to the reporting time when the receive time is missing
        received = parse_timestamp(data.get('time_received')) or reported
        if received is None:
            return None

        return cls(
            serial=serial,
            type=data.get('type') or '',
            subtype=data.get('subtype') or '',
            manufacturer=data.get('manufacturer') or '',
            time_received=received,
            datetime=reported,
            lat=_float(data.get('lat')),
            lon=_float(data.get('lon')),
            alt=_float(data.get('alt')),
            vel_v=_float(data.get('vel_v')),
            vel_h=_float(data.get('vel_h')),
            heading=_float(data.get('heading')),
            frequency=_float(data.get('frequency')),
            uploader_callsign=data.get('uploader_callsign') or '',
            frame=_int(data.get('frame')),
        )

    @property
    def received_epoch(self) -> int:
        """Receive time as whole epoch seconds."""
        return int(self.time_received.timestamp())

    @property
    def display_type(self) -> str:
        """Subtype when reported (e.g. RS41-SGP), otherwise the type."""
        return self.subtype or self.type

    @property
    def is_intermet(self) -> bool:
        return self.manufacturer == INTERMET_MANUFACTURER


@dataclass(frozen=True)
class Point:
    """A named geographic location (launch site or receiver)."""
    lat: float
    lon: float
    name: str

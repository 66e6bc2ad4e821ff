"""
Data models for Balloony.

- TelemetryRecord: one parsed SondeHub packet
- Point: named location (launch sites, receivers)
- SondeSession: per-sonde tracking state with a bounded lifetime
- Prediction: SondeHub landing prediction and path
"""

from balloony.models.base import Base, make_engine, make_session_factory, init_db
from balloony.models.prediction import PathSample, Prediction
from balloony.models.session import SondeSession, SondeSessionRow
from balloony.models.telemetry import Point, TelemetryRecord, parse_timestamp

__all__ = [
    'Base',
    'make_engine',
    'make_session_factory',
    'init_db',
    'SondeSession',
    'SondeSessionRow',
    'PathSample',
    'Prediction',
    'Point',
    'TelemetryRecord',
    'parse_timestamp',
]

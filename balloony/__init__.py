"""
Balloony Package.

Radiosonde alert pipeline built on SondeHub telemetry, Redis/SQLAlchemy
session storage, NumPy proximity search and Discord webhooks.

Modules:
    api/         Status endpoints for the running pipeline
    models/      Telemetry record, tracking session and point types
    ingestion/   SondeHub MQTT feed, batch normalizer, processing pipeline
    services/    External integrations (Radar geocoding, Discord, map render)
    geo.py       Geofence and haversine nearest-point search
    locking.py   Single-flight claim/release per sonde serial
    policy.py    Session state machine and update throttling
    reference.py Periodically refreshed receiver point set
    rs41.py      RS41 serial to manufacture date decoding
    store.py     Session stores with fixed time-to-live
    config.py    Centralized configuration from environment variables
"""

__version__ = '2.0.0'

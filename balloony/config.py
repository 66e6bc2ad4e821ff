"""
Configuration management for Balloony.

Loads settings from environment variables (and a local .env file) with
sensible defaults. All configuration is centralized here to avoid magic
strings scattered throughout the codebase.

Values are read when load_config() runs, so tests can set environment
variables and build a fresh AppConfig.
"""

import json
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from balloony.errors import ConfigError

load_dotenv()

REQUIRED_VARIABLES = (
    'RADAR_API_KEY',
    'ALERT_BOUNDS',
    'DISCORD_WEBHOOK_URL',
    'UPDATE_INTERVAL',
)

# Sessions expire after 8 hours without a write
SESSION_TTL_SECONDS = 8 * 60 * 60

# Receivers list refresh period
RECEIVERS_UPDATE_INTERVAL = 12 * 60 * 60


def _env(name: str, default: str = '') -> str:
    return os.getenv(name, default)


def _env_flag(name: str, default: str = '0') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')


def _parse_bounds(value: str) -> Optional[List[Tuple[float, float]]]:
    """Parse '[[lon, lat], ...]' JSON into a vertex list, or None if invalid."""
    if not value:
        return None
    try:
        raw = json.loads(value)
        ring = [(float(pt[0]), float(pt[1])) for pt in raw]
    except (ValueError, TypeError, IndexError):
        return None
    if len(ring) < 3:
        return None
    return ring


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class AlertConfig:
    """Alerting area and message settings."""
    bounds_raw: str = field(default_factory=lambda: _env('ALERT_BOUNDS'))
    bypass_location_filter: bool = field(
        default_factory=lambda: _env_flag('BYPASS_LOCATION_FILTER')
    )
    update_interval_raw: str = field(default_factory=lambda: _env('UPDATE_INTERVAL'))
    timezone: str = field(default_factory=lambda: _env('TIMEZONE') or 'Etc/UTC')
    message_usual: str = field(
        default_factory=lambda: _env('MESSAGE_USUAL') or 'A new sonde has been detected!'
    )
    message_unusual: str = field(
        default_factory=lambda: _env('MESSAGE_UNUSUAL') or 'Unusual Sonde Detected!'
    )
    launch_sites_file: str = field(
        default_factory=lambda: _env('LAUNCH_SITES_FILE', 'launchsites.json')
    )

    @property
    def bounds(self) -> Optional[List[Tuple[float, float]]]:
        return _parse_bounds(self.bounds_raw)

    @property
    def update_interval(self) -> Optional[int]:
        return _parse_int(self.update_interval_raw)


@dataclass(frozen=True)
class RadarConfig:
    """Radar.io reverse geocoding configuration."""
    api_key: Optional[str] = field(default_factory=lambda: _env('RADAR_API_KEY') or None)
    base_url: str = 'https://api.radar.io/v1'


@dataclass(frozen=True)
class DiscordConfig:
    """Discord webhook configuration."""
    webhook_url: Optional[str] = field(
        default_factory=lambda: _env('DISCORD_WEBHOOK_URL') or None
    )


@dataclass(frozen=True)
class SondeHubConfig:
    """SondeHub API and MQTT feed settings."""
    api_url: str = field(
        default_factory=lambda: _env('SONDEHUB_API_URL', 'https://api.v2.sondehub.org')
    )
    mqtt_host: str = field(
        default_factory=lambda: _env('SONDEHUB_MQTT_HOST', 'ws-reader.v2.sondehub.org')
    )
    mqtt_port: int = field(
        default_factory=lambda: _parse_int(_env('SONDEHUB_MQTT_PORT', '443')) or 443
    )
    mqtt_topic: str = 'batch'
    client_id: str = field(default_factory=lambda: _env('MQTT_CLIENT_ID', 'balloonyv2'))
    receivers_update_interval: int = field(
        default_factory=lambda: _parse_int(_env('RECEIVERS_UPDATE_INTERVAL'))
        or RECEIVERS_UPDATE_INTERVAL
    )


@dataclass(frozen=True)
class StoreConfig:
    """Session store settings."""
    redis_url: Optional[str] = field(default_factory=lambda: _env('REDIS_URL') or None)
    redis_addr: str = field(default_factory=lambda: _env('REDIS_ADDR', 'localhost:6379'))
    redis_password: Optional[str] = field(
        default_factory=lambda: _env('REDIS_PASSWORD') or None
    )
    redis_db: int = field(default_factory=lambda: _parse_int(_env('REDIS_DB', '0')) or 0)
    database_url: str = field(
        default_factory=lambda: _env('DATABASE_URL', 'sqlite:///balloony.db')
    )
    backend: str = field(default_factory=lambda: _env('SESSION_BACKEND', 'redis').lower())
    session_ttl_seconds: int = SESSION_TTL_SECONDS

    @property
    def is_redis(self) -> bool:
        return self.backend == 'redis'


@dataclass(frozen=True)
class RenderConfig:
    """Map image rendering settings."""
    enabled: bool = field(default_factory=lambda: _env_flag('RENDER_MAPS', '1'))
    width_px: int = 1280
    height_px: int = 720


@dataclass(frozen=True)
class PipelineConfig:
    """Worker pool settings."""
    worker_threads: int = field(
        default_factory=lambda: _parse_int(_env('WORKER_THREADS', '8')) or 8
    )


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    alert: AlertConfig
    radar: RadarConfig
    discord: DiscordConfig
    sondehub: SondeHubConfig
    store: StoreConfig
    render: RenderConfig
    pipeline: PipelineConfig

    # Status server settings
    status_server: bool
    port: int
    debug: bool

    def validate(self) -> None:
        """
        Check that everything needed to run is present.

        Raises ConfigError naming every problem found.
        """
        present = {
            'RADAR_API_KEY': self.radar.api_key,
            'ALERT_BOUNDS': self.alert.bounds_raw,
            'DISCORD_WEBHOOK_URL': self.discord.webhook_url,
            'UPDATE_INTERVAL': self.alert.update_interval_raw,
        }
        problems = [
            f'Required environment variable {name} is not set'
            for name in REQUIRED_VARIABLES
            if not present[name]
        ]
        if self.alert.bounds_raw and self.alert.bounds is None:
            problems.append('ALERT_BOUNDS must be a JSON array of at least 3 [lon, lat] pairs')
        if self.alert.update_interval_raw and self.alert.update_interval is None:
            problems.append('UPDATE_INTERVAL must be an integer number of seconds')
        if problems:
            raise ConfigError('; '.join(problems))


def load_config() -> AppConfig:
    """Load all configuration from the environment."""
    return AppConfig(
        alert=AlertConfig(),
        radar=RadarConfig(),
        discord=DiscordConfig(),
        sondehub=SondeHubConfig(),
        store=StoreConfig(),
        render=RenderConfig(),
        pipeline=PipelineConfig(),
        status_server=_env_flag('STATUS_SERVER', '1'),
        port=_parse_int(_env('PORT', '5000')) or 5000,
        debug=_env_flag('DEBUG'),
    )


# Singleton instance
config = load_config()

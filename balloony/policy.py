"""
Session policy - decides what to do with each admitted telemetry record.

Per sonde there are two states:

    Absent  no session in the store. The next record creates one and
            posts an "airborne" message.
    Active  a session exists. Records are throttled to one per update
            interval; anything in between is suppressed. Once the sonde is
            descending below 10,000 ft the interval drops to 30 seconds so
            the landing prediction stays current.

Active returns to Absent only through the store's time-to-live.

The session is checked out for one record and written back only when
the record is fully handled. If any lookup or the notification fails,
the checked-out copy is discarded, so the next eligible record retries
the same window.
"""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from balloony.config import SESSION_TTL_SECONDS, AppConfig
from balloony.errors import EmptyPointSetError, LookupFailure, SerialDecodeError
from balloony.geo import meters_to_feet
from balloony.models import Prediction, SondeSession, TelemetryRecord
from balloony.rs41 import resolve_rs41_date
from balloony.services.discord import Embed, Message

logger = logging.getLogger(__name__)

# 10,000 ft in meters
LOW_ALTITUDE_M = 3048
LOW_ALTITUDE_INTERVAL_S = 30

LAUNCH_SITE_RADIUS_MI = 10
RECEIVER_RADIUS_MI = 20

# Intermet sondes report no usable vertical velocity; we substitute these
IMET_DESCENDING = -1.0
IMET_ASCENDING = 1.0

SONDEHUB_URL = 'https://sondehub.org/{serial}'


class Outcome(str, Enum):
    """Result of processing one record."""
    NEW = 'new'
    UPDATED = 'updated'
    SUPPRESSED = 'suppressed'
    FAILED = 'failed'


@dataclass(frozen=True)
class PolicySettings:
    """Tunables for the session policy."""
    update_interval: int
    timezone: str = 'Etc/UTC'
    message_usual: str = 'A new sonde has been detected!'
    message_unusual: str = 'Unusual Sonde Detected!'
    session_ttl: int = SESSION_TTL_SECONDS

    @classmethod
    def from_config(cls, app_config: AppConfig) -> 'PolicySettings':
        return cls(
            update_interval=app_config.alert.update_interval,
            timezone=app_config.alert.timezone,
            message_usual=app_config.alert.message_usual,
            message_unusual=app_config.alert.message_unusual,
            session_ttl=app_config.store.session_ttl_seconds,
        )


def gate_allows(record_time: int, alt: float, vel_v: float, last_time: int, interval: int) -> bool:
    """
    Throttle gate for an active session.

    Passes once `interval` seconds have elapsed since the last processed
    record, or 30 seconds for a sonde descending below 10,000 ft.
    """
    if record_time >= last_time + interval:
        return True
    if alt < LOW_ALTITUDE_M and vel_v < 0:
        return record_time >= last_time + LOW_ALTITUDE_INTERVAL_S
    return False


def apply_imet_correction(record: TelemetryRecord, session: SondeSession) -> TelemetryRecord:
    """
    Derive an Intermet sonde's vertical direction from its altitude change.

    Compares against the altitude stored in the session (when there is
    one), then stores the current altitude. Returns the record to use,
    with vel_v replaced when a comparison was possible.
    """
    corrected = record
    if session.imet_alt is not None:
        vel_v = IMET_DESCENDING if record.alt < session.imet_alt else IMET_ASCENDING
        corrected = dataclasses.replace(record, vel_v=vel_v)
    session.imet_alt = int(record.alt)
    return corrected


def is_usual_time(moment: datetime) -> bool:
    """True around the synoptic launch windows (11-13 and 23-01 UTC)."""
    hour = moment.utctimetuple().tm_hour
    return 11 <= hour <= 13 or hour in (23, 0, 1)


def vertical_arrow(vel_v: float) -> str:
    if vel_v > 0:
        return '↑'
    if vel_v == 0:
        return '--'
    return '↓'


def format_altitude(alt_m: float) -> str:
    return f'{int(meters_to_feet(alt_m)):,}'


def format_clock(moment: datetime) -> str:
    """12-hour clock like '3:04 PM', independent of the process locale."""
    hour = moment.hour % 12 or 12
    suffix = 'AM' if moment.hour < 12 else 'PM'
    return f'{hour}:{moment.minute:02d} {suffix}'


class SessionPolicy:
    """
    State machine driving notifications for admitted records.

    Collaborators are injected:
        store       get(serial) / put(serial, session, ttl)
        notifier    send(message) -> handle / update(handle, message, image)
        geocoder    lookup(lat, lon) -> label
        predictions get_prediction(serial) -> Prediction
        renderer    render(record, prediction) -> bytes | None (optional)
        launch_sites, receivers  closest(lat, lon) -> (Point, miles)
    """

    def __init__(
        self,
        store,
        notifier,
        geocoder,
        predictions,
        settings: PolicySettings,
        launch_sites=None,
        receivers=None,
        renderer=None,
    ):
        self.store = store
        self.notifier = notifier
        self.geocoder = geocoder
        self.predictions = predictions
        self.settings = settings
        self.launch_sites = launch_sites
        self.receivers = receivers
        self.renderer = renderer

        try:
            self.tz = ZoneInfo(settings.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.error(f'Error loading timezone {settings.timezone!r}, using UTC')
            self.tz = ZoneInfo('Etc/UTC')

    def process(self, record: TelemetryRecord) -> Outcome:
        """Handle one record. The caller must hold the claim for its serial."""
        try:
            session = self.store.get(record.serial)
        except LookupFailure as e:
            logger.error(f'Error getting session for {record.serial}: {e}')
            return Outcome.FAILED

        if session is None:
            return self.handle_new(record)
        return self.handle_existing(record, session)

    # ------------------------------------------------------------------
    # Absent -> Active
    # ------------------------------------------------------------------

    def handle_new(self, record: TelemetryRecord) -> Outcome:
        session = SondeSession(
            time=record.received_epoch,
            webhook='',
            from_text=self._launch_site_text(record),
            imet_alt=int(record.alt) if record.is_intermet else None,
        )

        try:
            location = self.geocoder.lookup(record.lat, record.lon)
            message = self.build_arrival_message(record, session, location)
            session.webhook = self.notifier.send(message)
            self.store.put(record.serial, session, self.settings.session_ttl)
        except LookupFailure as e:
            logger.error(f'Dropping new sonde {record.serial}: {e}')
            return Outcome.FAILED

        logger.info(f'New sonde detected: {record.serial} at {record.time_received.isoformat()}')
        return Outcome.NEW

    def _launch_site_text(self, record: TelemetryRecord) -> str:
        if self.launch_sites is None:
            return ''
        try:
            site, dist = self.launch_sites.closest(record.lat, record.lon)
        except EmptyPointSetError:
            logger.debug('No launch sites loaded')
            return ''
        if dist < LAUNCH_SITE_RADIUS_MI:
            return f'From {site.name}'
        return ''

    def build_arrival_message(
        self,
        record: TelemetryRecord,
        session: SondeSession,
        location: str,
    ) -> Message:
        title = f'{record.display_type} {record.serial} is airborne'
        if session.from_text:
            title = f'{title} {session.from_text}'

        embed = Embed(title=title, url=SONDEHUB_URL.format(serial=record.serial))
        embed.add_field(f'Frequency: {record.frequency:.1f} MHz')
        embed.add_field(f'Launched from {location}')
        embed.add_field(f'Altitude: {format_altitude(record.alt)} ft')
        embed.add_field(f'First detected by: {record.uploader_callsign}')
        next_update = record.received_epoch + self.settings.update_interval
        embed.add_field(f'Prediction available in <t:{next_update}:R>')

        if is_usual_time(record.time_received):
            content = self.settings.message_usual
        else:
            content = self.settings.message_unusual

        return Message(embeds=[embed], content=content)

    # ------------------------------------------------------------------
    # Active
    # ------------------------------------------------------------------

    def handle_existing(self, record: TelemetryRecord, session: SondeSession) -> Outcome:
        if record.is_intermet:
            record = apply_imet_correction(record, session)

        allowed = gate_allows(
            record.received_epoch,
            record.alt,
            record.vel_v,
            session.time,
            self.settings.update_interval,
        )
        if not allowed:
            logger.debug(f'Suppressed {record.serial}: update interval not elapsed')
            if record.is_intermet:
                self._save_altitude(record.serial, session)
            return Outcome.SUPPRESSED

        try:
            location = self.geocoder.lookup(record.lat, record.lon)
            prediction = self.predictions.get_prediction(record.serial)
            image = self.renderer.render(record, prediction) if self.renderer else None
            predicted_location = self.geocoder.lookup(prediction.latitude, prediction.longitude)

            message = self.build_update_message(record, location, prediction, predicted_location)
            self.notifier.update(session.webhook, message, image)

            session.time = record.received_epoch
            self.store.put(record.serial, session, self.settings.session_ttl)
        except LookupFailure as e:
            logger.error(f'Dropping update for {record.serial}: {e}')
            return Outcome.FAILED

        logger.info(f'Updated {record.serial} at {format_altitude(record.alt)} ft')
        return Outcome.UPDATED

    def _save_altitude(self, serial: str, session: SondeSession) -> None:
        try:
            self.store.put(serial, session, self.settings.session_ttl)
        except LookupFailure as e:
            logger.error(f'Error saving altitude for {serial}: {e}')

    def build_update_message(
        self,
        record: TelemetryRecord,
        location: str,
        prediction: Prediction,
        predicted_location: str,
    ) -> Message:
        embed = Embed(
            title=f'{record.display_type} {record.serial} is airborne',
            url=SONDEHUB_URL.format(serial=record.serial),
        )
        embed.add_field(f'Frequency: {record.frequency:.1f} MHz')
        embed.add_field(f'Altitude: {format_altitude(record.alt)} ft {vertical_arrow(record.vel_v)}')
        embed.add_field(f'Over {location}')

        landing_time = prediction.time.astimezone(self.tz)
        embed.add_field(
            f'Predicted to land in {predicted_location} around {format_clock(landing_time)}'
        )

        nearby = self._nearby_receiver(prediction)
        if nearby:
            embed.add_field(nearby)

        manufactured = self._manufacture_date(record)
        if manufactured:
            embed.add_field(manufactured)

        return Message(embeds=[embed])

    def _nearby_receiver(self, prediction: Prediction) -> Optional[str]:
        if self.receivers is None:
            return None
        try:
            point, dist = self.receivers.closest(prediction.latitude, prediction.longitude)
        except EmptyPointSetError as e:
            logger.error(f'Error finding closest receiver: {e}')
            return None
        if point.name and dist < RECEIVER_RADIUS_MI:
            return f'Landing nearby **{point.name}** ({dist:.1f} mi)'
        return None

    def _manufacture_date(self, record: TelemetryRecord) -> Optional[str]:
        if record.type != 'RS41':
            return None
        try:
            built = resolve_rs41_date(record.serial)
        except SerialDecodeError as e:
            logger.warning(f'Error resolving RS41 date: {e}')
            return None
        return f'Sonde Manufactured: {built.month}/{built.day}/{built.year}'

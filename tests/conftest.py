"""
Shared fixtures and fake collaborators for the Balloony test suite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from balloony.errors import LookupFailure
from balloony.geo import ProximityIndex
from balloony.models import PathSample, Point, Prediction, SondeSession, TelemetryRecord
from balloony.policy import PolicySettings, SessionPolicy
from balloony.reference import ReferencePointSet

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

# Square around Oklahoma City, [lon, lat]
BOUNDARY = [(-98.0, 35.0), (-97.0, 35.0), (-97.0, 36.0), (-98.0, 36.0)]


def make_record(serial='X1', seconds=0, **overrides) -> TelemetryRecord:
    """Record received `seconds` after T0, inside BOUNDARY by default."""
    received = T0 + timedelta(seconds=seconds)
    fields = dict(
        serial=serial,
        type='RS41',
        subtype='RS41-SGP',
        manufacturer='Vaisala',
        time_received=received,
        datetime=received,
        lat=35.5,
        lon=-97.5,
        alt=15000.0,
        vel_v=5.0,
        vel_h=10.0,
        heading=90.0,
        frequency=403.0,
        uploader_callsign='N0CALL',
        frame=1,
    )
    fields.update(overrides)
    return TelemetryRecord(**fields)


def make_packet(serial='X1', frame=1, **overrides) -> dict:
    """Raw SondeHub packet dict."""
    packet = {
        'serial': serial,
        'type': 'RS41',
        'subtype': 'RS41-SGP',
        'manufacturer': 'Vaisala',
        'time_received': '2024-05-01T12:00:00.123456Z',
        'datetime': '2024-05-01T12:00:00Z',
        'lat': 35.5,
        'lon': -97.5,
        'alt': 15000.0,
        'vel_v': 5.0,
        'vel_h': 10.0,
        'heading': 90.0,
        'frequency': 403.0,
        'uploader_callsign': 'N0CALL',
        'frame': frame,
        'temp': -40.1,
    }
    packet.update(overrides)
    return packet


class FakeStore:
    """In-memory store that round-trips sessions through JSON like Redis."""

    backend = 'fake'

    def __init__(self):
        self.data = {}
        self.puts = []
        self.fail_get = False
        self.fail_put = False

    def get(self, serial):
        if self.fail_get:
            raise LookupFailure('store down')
        payload = self.data.get(serial)
        return SondeSession.from_json(payload) if payload else None

    def put(self, serial, session, ttl=8 * 60 * 60):
        if self.fail_put:
            raise LookupFailure('store down')
        self.puts.append((serial, ttl))
        self.data[serial] = session.to_json()

    def session(self, serial):
        return self.get(serial)


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.updates = []
        self.fail = False

    def send(self, message):
        if self.fail:
            raise LookupFailure('discord down')
        self.sent.append(message)
        return f'https://discord.test/api/webhooks/1/abc/messages/{len(self.sent)}'

    def update(self, handle, message, image=None):
        if self.fail:
            raise LookupFailure('discord down')
        self.updates.append((handle, message, image))


class FakeGeocoder:
    def __init__(self, label='Norman, OK'):
        self.label = label
        self.calls = []
        self.fail = False

    def lookup(self, lat, lon):
        self.calls.append((lat, lon))
        if self.fail:
            raise LookupFailure('radar down')
        return self.label


class FakePredictions:
    def __init__(self):
        self.fail = False
        self.prediction = Prediction(
            vehicle='X1',
            latitude=35.2,
            longitude=-97.4,
            time=T0 + timedelta(hours=2),
            path=[
                PathSample(lat=35.5, lon=-97.5, time=T0.timestamp()),
                PathSample(lat=35.2, lon=-97.4, time=T0.timestamp() + 7200),
            ],
        )

    def get_prediction(self, serial):
        if self.fail:
            raise LookupFailure('no prediction')
        return self.prediction


class FakeRenderer:
    def __init__(self, image=b'\x89PNG fake'):
        self.image = image

    def render(self, record, prediction):
        return self.image


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def predictions():
    return FakePredictions()


@pytest.fixture
def launch_sites():
    return ProximityIndex([
        Point(lat=35.18, lon=-97.44, name='Norman'),
        Point(lat=39.0, lon=-104.0, name='Denver'),
    ])


@pytest.fixture
def receivers():
    return ReferencePointSet([
        Point(lat=35.21, lon=-97.41, name='KF5XYZ'),
        Point(lat=40.0, lon=-90.0, name='FARAWAY'),
    ])


@pytest.fixture
def settings():
    return PolicySettings(update_interval=300, timezone='America/Chicago')


@pytest.fixture
def policy(store, notifier, geocoder, predictions, settings, launch_sites, receivers):
    return SessionPolicy(
        store=store,
        notifier=notifier,
        geocoder=geocoder,
        predictions=predictions,
        settings=settings,
        launch_sites=launch_sites,
        receivers=receivers,
        renderer=None,
    )

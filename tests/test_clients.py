"""
Tests for the HTTP clients: Radar, Discord and SondeHub.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from balloony.errors import LookupFailure
from balloony.ingestion.sondehub_client import SondeHubClient
from balloony.models import Prediction
from balloony.services.discord import (
    DiscordNotifier,
    Embed,
    ZERO_WIDTH_SPACE,
    Message,
    message_handle,
    with_wait,
)
from balloony.services.radar import LOCATION_NOT_FOUND, RadarClient, location_label

WEBHOOK = 'https://discord.test/api/webhooks/1/abc'


def fake_response(status=200, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    return response


class TestLocationLabel:
    """Tests for Radar label selection."""

    def test_city(self):
        response = {'addresses': [{'city': 'Norman', 'county': 'Cleveland', 'stateCode': 'OK'}]}
        assert location_label(response) == 'Norman, OK'

    def test_county_fallback(self):
        response = {'addresses': [{'county': 'Cleveland', 'stateCode': 'OK'}]}
        assert location_label(response) == 'Cleveland County, OK'

    def test_no_addresses(self):
        assert location_label({'addresses': []}) == LOCATION_NOT_FOUND
        assert location_label({}) == LOCATION_NOT_FOUND

    def test_neither_city_nor_county(self):
        assert location_label({'addresses': [{'stateCode': 'OK'}]}) == ''


class TestRadarClient:
    def test_lookup_sends_key_and_coordinates(self):
        client = RadarClient(api_key='secret')
        client.session.get = MagicMock(return_value=fake_response(
            payload={'addresses': [{'city': 'Moore', 'stateCode': 'OK'}]},
        ))

        assert client.lookup(35.3, -97.5) == 'Moore, OK'

        _, kwargs = client.session.get.call_args
        assert kwargs['headers'] == {'Authorization': 'secret'}
        assert kwargs['params']['coordinates'].startswith('35.3')

    def test_non_200_raises(self):
        client = RadarClient(api_key='secret')
        client.session.get = MagicMock(return_value=fake_response(status=401))

        with pytest.raises(LookupFailure):
            client.lookup(35.3, -97.5)

    def test_missing_key_raises(self):
        with pytest.raises(LookupFailure):
            RadarClient(api_key=None).lookup(35.3, -97.5)

    def test_network_error_raises(self):
        client = RadarClient(api_key='secret')
        client.session.get = MagicMock(side_effect=requests.exceptions.ConnectionError('down'))

        with pytest.raises(LookupFailure):
            client.lookup(35.3, -97.5)


class TestWebhookUrls:
    @pytest.mark.parametrize('url,expected', [
        (WEBHOOK, WEBHOOK + '?wait=true'),
        (WEBHOOK + '?thread_id=5', WEBHOOK + '?thread_id=5&wait=true'),
        (WEBHOOK + '?', WEBHOOK + '?wait=true'),
    ])
    def test_with_wait(self, url, expected):
        assert with_wait(url) == expected

    def test_message_handle_strips_query(self):
        assert message_handle(WEBHOOK + '?thread_id=5', '99') == WEBHOOK + '/messages/99'


class TestDiscordNotifier:
    """Tests for webhook send and edit."""

    def make_message(self):
        embed = Embed(title='RS41 X1 is airborne')
        embed.add_field('Frequency: 403.0 MHz')
        return Message(embeds=[embed], content='hello')

    def test_send_returns_handle(self):
        notifier = DiscordNotifier(WEBHOOK)
        notifier.session.request = MagicMock(return_value=fake_response(payload={'id': '123'}))

        handle = notifier.send(self.make_message())

        assert handle == WEBHOOK + '/messages/123'
        args, kwargs = notifier.session.request.call_args
        assert args == ('POST', WEBHOOK + '?wait=true')
        assert kwargs['json']['content'] == 'hello'
        assert kwargs['json']['embeds'][0]['fields'][0] == {
            'name': 'Frequency: 403.0 MHz',
            'value': ZERO_WIDTH_SPACE,
        }

    def test_send_error_status(self):
        notifier = DiscordNotifier(WEBHOOK)
        notifier.session.request = MagicMock(return_value=fake_response(status=404))

        with pytest.raises(LookupFailure):
            notifier.send(self.make_message())

    def test_send_without_id(self):
        notifier = DiscordNotifier(WEBHOOK)
        notifier.session.request = MagicMock(return_value=fake_response(payload={}))

        with pytest.raises(LookupFailure):
            notifier.send(self.make_message())

    def test_send_without_webhook(self):
        with pytest.raises(LookupFailure):
            DiscordNotifier(None).send(self.make_message())

    def test_update_patches_handle(self):
        notifier = DiscordNotifier(WEBHOOK)
        notifier.session.request = MagicMock(return_value=fake_response(payload={'id': '123'}))
        handle = WEBHOOK + '/messages/123'

        notifier.update(handle, Message(embeds=[Embed(title='t')]))

        args, kwargs = notifier.session.request.call_args
        assert args == ('PATCH', handle + '?wait=true')
        assert 'content' not in kwargs['json']

    def test_update_with_image_is_multipart(self):
        notifier = DiscordNotifier(WEBHOOK)
        notifier.session.request = MagicMock(return_value=fake_response(payload={'id': '123'}))

        notifier.update(WEBHOOK + '/messages/123', Message(embeds=[Embed(title='t')]), b'PNG')

        _, kwargs = notifier.session.request.call_args
        payload = json.loads(kwargs['data']['payload_json'])
        name, body, mime = kwargs['files']['files[0]']
        assert body == b'PNG'
        assert mime == 'image/png'
        assert payload['attachments'][0]['filename'] == name
        assert payload['embeds'][0]['image']['url'] == f'attachment://{name}'


PREDICTION_RESULT = {
    'vehicle': 'X1',
    'descending': True,
    'landed': False,
    'burst_altitude': 31000.0,
    'data': json.dumps([
        {'lat': 35.5, 'lon': -97.5, 'alt': 15000, 'time': 1714564800},
        {'lat': 35.2, 'lon': -97.4, 'alt': 350, 'time': 1714572000},
    ]),
}


class TestPrediction:
    def test_landing_is_last_sample(self):
        prediction = Prediction.from_result(PREDICTION_RESULT)

        assert prediction.latitude == 35.2
        assert prediction.longitude == -97.4
        assert prediction.time.timestamp() == 1714572000
        assert prediction.descending is True
        assert len(prediction.path) == 2

    def test_empty_data_raises(self):
        with pytest.raises(ValueError):
            Prediction.from_result({'vehicle': 'X1', 'data': '[]'})

    def test_missing_data_raises(self):
        with pytest.raises(ValueError):
            Prediction.from_result({'vehicle': 'X1'})


class TestSondeHubClient:
    """Tests for the SondeHub REST client."""

    def test_get_prediction(self):
        client = SondeHubClient()
        client.session.get = MagicMock(return_value=fake_response(payload=[PREDICTION_RESULT]))

        prediction = client.get_prediction('X1')

        assert prediction.vehicle == 'X1'
        _, kwargs = client.session.get.call_args
        assert kwargs['params'] == {'vehicles': 'X1'}

    def test_no_results(self):
        client = SondeHubClient()
        client.session.get = MagicMock(return_value=fake_response(payload=[]))

        with pytest.raises(LookupFailure):
            client.get_prediction('X1')

    def test_bad_prediction_data(self):
        client = SondeHubClient()
        client.session.get = MagicMock(return_value=fake_response(
            payload=[{'vehicle': 'X1', 'data': 'not json'}],
        ))

        with pytest.raises(LookupFailure):
            client.get_prediction('X1')

    def test_http_error(self):
        client = SondeHubClient()
        client.session.get = MagicMock(return_value=fake_response(status=500))

        with pytest.raises(LookupFailure):
            client.get_prediction('X1')

    def test_get_receivers_first_entry_per_callsign(self):
        client = SondeHubClient()
        client.session.get = MagicMock(return_value=fake_response(payload={
            'KF5XYZ': {
                '2024-05-01T12:00:00Z': {'uploader_position': [35.21, -97.41, 360]},
                '2024-05-01T11:00:00Z': {'uploader_position': [10.0, 10.0, 0]},
            },
            'NOPOS': {'2024-05-01T12:00:00Z': {'uploader_position': None}},
        }))

        receivers = client.get_receivers()

        assert len(receivers) == 1
        assert receivers[0].name == 'KF5XYZ'
        assert (receivers[0].lat, receivers[0].lon) == (35.21, -97.41)

    def test_receivers_wrong_shape(self):
        client = SondeHubClient()
        client.session.get = MagicMock(return_value=fake_response(payload=[]))

        with pytest.raises(LookupFailure):
            client.get_receivers()

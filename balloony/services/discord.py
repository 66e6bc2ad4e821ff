"""
Discord webhook notifications.

New sondes get a new webhook message; later updates edit that message in
place (PATCH .../messages/<id>). The "handle" kept in a sonde's session
is the message URL, so an update needs nothing but the session.

Requests always carry wait=true so Discord returns the created message,
whose id forms the handle.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from balloony.config import config
from balloony.errors import LookupFailure

logger = logging.getLogger(__name__)

ZERO_WIDTH_SPACE = '\u200b'
EMBED_COLOR = 0x00FFFF


@dataclass
class EmbedField:
    """Embed field. We put all text in the name; Discord requires a value."""
    name: str
    value: str = ZERO_WIDTH_SPACE

    def to_dict(self) -> dict:
        return {'name': self.name, 'value': self.value}


@dataclass
class Embed:
    """Rich embed describing one sonde."""
    title: str
    url: str = ''
    description: str = ''
    color: int = EMBED_COLOR
    fields: List[EmbedField] = field(default_factory=list)
    image_url: Optional[str] = None

    def add_field(self, name: str) -> None:
        self.fields.append(EmbedField(name))

    def to_dict(self) -> dict:
        data = {
            'type': 'rich',
            'title': self.title,
            'color': self.color,
            'fields': [f.to_dict() for f in self.fields],
        }
        if self.url:
            data['url'] = self.url
        if self.description:
            data['description'] = self.description
        if self.image_url:
            data['image'] = {'url': self.image_url}
        return data


@dataclass
class Message:
    """Webhook message: optional plain content plus embeds."""
    embeds: List[Embed] = field(default_factory=list)
    content: Optional[str] = None
    attachments: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {'embeds': [e.to_dict() for e in self.embeds]}
        if self.content:
            data['content'] = self.content
        if self.attachments:
            data['attachments'] = self.attachments
        return data


def with_wait(url: str) -> str:
    """Append wait=true to a webhook URL."""
    if url.endswith('?') or url.endswith('&'):
        return url + 'wait=true'
    if '?' in url:
        return url + '&wait=true'
    return url + '?wait=true'


def message_handle(webhook_url: str, message_id: str) -> str:
    """URL of a sent message, used for later edits."""
    base = webhook_url.split('?', 1)[0].rstrip('/')
    return f'{base}/messages/{message_id}'


class DiscordNotifier:
    """Sends and edits webhook messages."""

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 15):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = requests.Session()

    @classmethod
    def from_config(cls) -> 'DiscordNotifier':
        return cls(webhook_url=config.discord.webhook_url)

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = self.session.request(method, with_wait(url), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise LookupFailure(f'Discord request failed: {e}') from e

        if not 200 <= response.status_code < 300:
            raise LookupFailure(f'Discord webhook returned status: {response.status_code}')

        try:
            return response.json()
        except ValueError as e:
            raise LookupFailure(f'Failed to decode Discord response: {e}') from e

    def send(self, message: Message) -> str:
        """
        Post a new message.

        Returns the handle (message URL) to pass to update().
        """
        if not self.webhook_url:
            raise LookupFailure('DISCORD_WEBHOOK_URL not set')

        data = self._request('POST', self.webhook_url, json=message.to_dict())
        message_id = data.get('id')
        if not message_id:
            raise LookupFailure('Discord response has no message id')
        return message_handle(self.webhook_url, message_id)

    def update(self, handle: str, message: Message, image: Optional[bytes] = None) -> None:
        """
        Edit a previously sent message.

        With an image, the PNG replaces any earlier attachment and is shown
        as the embed image.
        """
        if image is None:
            self._request('PATCH', handle, json=message.to_dict())
            return

        image_name = f'map_{int(time.time())}.png'
        for embed in message.embeds:
            embed.image_url = f'attachment://{image_name}'
        # A fresh attachment list clears previous maps
        message.attachments = [
            {'id': '0', 'filename': image_name, 'description': 'Map image'},
        ]

        self._request(
            'PATCH',
            handle,
            data={'payload_json': json.dumps(message.to_dict())},
            files={'files[0]': (image_name, image, 'image/png')},
        )

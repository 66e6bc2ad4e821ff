"""
External integration services.

Handles third-party calls (reverse geocoding, Discord webhooks, map
rendering). Network failures surface as LookupFailure.
"""

from balloony.services.discord import DiscordNotifier, Embed, EmbedField, Message
from balloony.services.maprender import MapRenderer
from balloony.services.radar import RadarClient, location_label

__all__ = [
    'DiscordNotifier',
    'Embed',
    'EmbedField',
    'Message',
    'MapRenderer',
    'RadarClient',
    'location_label',
]

"""
Data ingestion module for Balloony.

Handles the SondeHub MQTT feed, batch normalization, SondeHub REST lookups
and the per-record processing pipeline.
"""

from balloony.ingestion.batch import filter_unique, parse_batch
from balloony.ingestion.feed import SondeFeed
from balloony.ingestion.pipeline import SondePipeline
from balloony.ingestion.sondehub_client import SondeHubClient

__all__ = ['filter_unique', 'parse_batch', 'SondeFeed', 'SondePipeline', 'SondeHubClient']

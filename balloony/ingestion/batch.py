"""
Batch normalizer for the SondeHub 'batch' feed.

Each MQTT message is a JSON array of packets. Popular sondes are heard by
many stations at once, so one batch often holds several copies of the same
transmission (or several consecutive frames). Only the newest frame per
serial is worth processing.
"""

import json
import logging
from typing import Dict, Iterable, List, Union

from balloony.errors import EmptyBatchError
from balloony.models import TelemetryRecord

logger = logging.getLogger(__name__)


def filter_unique(records: Iterable[TelemetryRecord]) -> Dict[str, TelemetryRecord]:
    """Map serial -> record with the highest frame. Ties keep the first seen."""
    result: Dict[str, TelemetryRecord] = {}
    for record in records:
        existing = result.get(record.serial)
        if existing is None or record.frame > existing.frame:
            result[record.serial] = record
    return result


def parse_batch(payload: Union[bytes, str]) -> List[TelemetryRecord]:
    """
    Parse a raw batch into at most one record per serial.

    Raises EmptyBatchError when the payload is not a JSON array or no
    usable records remain; the caller should skip the batch.
    """
    try:
        raw = json.loads(payload)
    except (ValueError, TypeError) as e:
        raise EmptyBatchError(f'Unparsable batch: {e}') from e

    if not isinstance(raw, list):
        raise EmptyBatchError('Batch is not a JSON array')

    records = []
    for item in raw:
        record = TelemetryRecord.from_dict(item)
        if record is not None:
            records.append(record)

    skipped = len(raw) - len(records)
    if skipped:
        logger.debug(f'Skipped {skipped} malformed packets in batch')

    unique = list(filter_unique(records).values())
    if not unique:
        raise EmptyBatchError('No packets found in batch')

    return unique

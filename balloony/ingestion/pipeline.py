"""
Processing pipeline - orchestrates a batch from the feed to the policy.

Pipeline stages per batch:
1. Normalize: parse the batch, keep the newest frame per serial
2. Geofence: drop sondes outside the alert boundary
3. Dispatch: one worker task per remaining record

Per record (on a worker thread):
4. Claim: skip if another worker already holds this serial
5. Policy: new / update / suppress, with all external I/O
6. Release: always, whatever happened in 5

Records for different serials run fully in parallel; two records for the
same serial never do.
"""

import logging
import threading
import time
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional, Union

from balloony.errors import MalformedInputError
from balloony.geo import Geofence
from balloony.ingestion.batch import parse_batch
from balloony.locking import DeviceLock
from balloony.models import TelemetryRecord
from balloony.policy import Outcome, SessionPolicy

logger = logging.getLogger(__name__)

SKIPPED_OUTSIDE = 'outside_boundary'
SKIPPED_CONTENDED = 'contended'
ERRORED = 'errored'


class SondePipeline:
    """
    Takes raw feed payloads and drives each record through the policy.

    Call handle_batch() from the feed callback; it returns as soon as the
    records are queued so the MQTT network loop is never blocked on I/O.
    """

    def __init__(
        self,
        policy: SessionPolicy,
        geofence: Geofence,
        device_lock: Optional[DeviceLock] = None,
        worker_threads: int = 8,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.policy = policy
        self.geofence = geofence
        # DeviceLock defines __len__, so an empty injected lock is falsy
        self.device_lock = device_lock if device_lock is not None else DeviceLock()
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=worker_threads,
                thread_name_prefix='sonde-worker',
            )
        self.executor = executor

        # Statistics
        self._stats_lock = threading.Lock()
        self._counts: Counter = Counter()
        self._last_batch_time: float = 0

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._counts[key] += 1

    def handle_batch(self, payload: Union[bytes, str]) -> List[Future]:
        """
        Normalize a raw batch and queue the records inside the boundary.

        The geofence runs here, before queueing, so traffic from the rest
        of the world never reaches the worker queue. Malformed batches are
        logged and dropped. Returns the queued futures, mainly so tests can
        wait on them.
        """
        self._count('batches')
        self._last_batch_time = time.time()

        try:
            records = parse_batch(payload)
        except MalformedInputError as e:
            self._count('dropped_batches')
            logger.debug(f'Error parsing packets: {e}')
            return []

        return [
            self.executor.submit(self._claim_and_process, record)
            for record in records
            if self._admit(record)
        ]

    def _admit(self, record: TelemetryRecord) -> bool:
        self._count('records')
        if not self.geofence.contains(record.lat, record.lon):
            self._count(SKIPPED_OUTSIDE)
            return False
        return True

    def process_record(self, record: TelemetryRecord) -> Optional[Outcome]:
        """
        Run one record through geofence, claim and policy.

        Returns the policy outcome, or None when the record was skipped
        before reaching the policy.
        """
        if not self._admit(record):
            return None
        return self._claim_and_process(record)

    def _claim_and_process(self, record: TelemetryRecord) -> Optional[Outcome]:
        with self.device_lock.claimed(record.serial) as acquired:
            if not acquired:
                self._count(SKIPPED_CONTENDED)
                logger.debug(f'{record.serial} already being processed, skipping')
                return None

            try:
                outcome = self.policy.process(record)
            except Exception:
                # Keep the worker alive; the claim is released by the with-block
                self._count(ERRORED)
                logger.exception(f'Unexpected error processing {record.serial}')
                return None

        self._count(outcome.value)
        return outcome

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work. In-flight records may finish or be abandoned."""
        self.executor.shutdown(wait=wait)
        logger.info('Pipeline stopped')

    @property
    def stats(self) -> dict:
        """Get pipeline statistics."""
        with self._stats_lock:
            counts = dict(self._counts)
        return {
            'batches': counts.get('batches', 0),
            'dropped_batches': counts.get('dropped_batches', 0),
            'records': counts.get('records', 0),
            'outcomes': {o.value: counts.get(o.value, 0) for o in Outcome},
            'skipped_outside_boundary': counts.get(SKIPPED_OUTSIDE, 0),
            'skipped_contended': counts.get(SKIPPED_CONTENDED, 0),
            'errored': counts.get(ERRORED, 0),
            'in_flight': len(self.device_lock),
            'last_batch_time': self._last_batch_time,
            'geofence_bypassed': self.geofence.bypass,
        }

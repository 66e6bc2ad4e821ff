"""
Tests for the processing pipeline.
"""

import json
import threading
from concurrent.futures import wait

import pytest

from balloony.geo import Geofence
from balloony.ingestion.pipeline import SondePipeline
from balloony.locking import DeviceLock
from balloony.policy import Outcome
from conftest import BOUNDARY, make_packet, make_record


class BlockingPolicy:
    """Policy stub that holds the first call until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = []

    def process(self, record):
        self.calls.append(record.serial)
        self.entered.set()
        self.release.wait(timeout=5)
        return Outcome.NEW


class ExplodingPolicy:
    def process(self, record):
        raise RuntimeError('bug')


@pytest.fixture
def pipeline(policy):
    p = SondePipeline(policy, Geofence(BOUNDARY), worker_threads=4)
    yield p
    p.shutdown(wait=True)


class TestProcessRecord:
    """Tests for the per-record stages."""

    def test_outside_boundary_skipped(self, pipeline, notifier):
        assert pipeline.process_record(make_record(lat=10.0, lon=10.0)) is None
        assert notifier.sent == []
        assert pipeline.stats['skipped_outside_boundary'] == 1

    def test_bypass_processes_outside(self, policy, notifier):
        p = SondePipeline(policy, Geofence(BOUNDARY, bypass=True), worker_threads=1)
        try:
            assert p.process_record(make_record(lat=10.0, lon=10.0)) == Outcome.NEW
        finally:
            p.shutdown(wait=True)

    def test_contended_record_skipped(self, policy, notifier):
        lock = DeviceLock()
        p = SondePipeline(policy, Geofence(BOUNDARY), device_lock=lock, worker_threads=1)
        lock.claim('X1')
        try:
            assert p.process_record(make_record()) is None
            assert notifier.sent == []
            assert p.stats['skipped_contended'] == 1
            # The holder's claim is untouched
            assert lock.claim('X1') is False
        finally:
            p.shutdown(wait=True)

    def test_empty_injected_lock_is_used(self, policy):
        lock = DeviceLock()
        p = SondePipeline(policy, Geofence(BOUNDARY), device_lock=lock, worker_threads=1)
        try:
            assert p.device_lock is lock
        finally:
            p.shutdown(wait=True)

    def test_shared_lock_excludes_other_holder(self, policy, notifier):
        """A serial claimed elsewhere on the shared table is not processed."""
        lock = DeviceLock()
        p = SondePipeline(policy, Geofence(BOUNDARY), device_lock=lock, worker_threads=1)
        try:
            with lock.claimed('X1') as held:
                assert held
                futures = p.handle_batch(json.dumps([make_packet('X1')]))
                wait(futures, timeout=5)
                assert futures[0].result() is None
            assert notifier.sent == []
        finally:
            p.shutdown(wait=True)

    def test_claim_released_after_processing(self, pipeline):
        pipeline.process_record(make_record())

        assert len(pipeline.device_lock) == 0

    def test_claim_released_after_unexpected_error(self):
        p = SondePipeline(ExplodingPolicy(), Geofence(BOUNDARY), worker_threads=1)
        try:
            assert p.process_record(make_record()) is None
            assert len(p.device_lock) == 0
            assert p.stats['errored'] == 1
        finally:
            p.shutdown(wait=True)

    def test_outcomes_counted(self, pipeline):
        pipeline.process_record(make_record(seconds=0))
        pipeline.process_record(make_record(seconds=10))

        outcomes = pipeline.stats['outcomes']
        assert outcomes['new'] == 1
        assert outcomes['suppressed'] == 1


class TestHandleBatch:
    """Tests for batch dispatch."""

    def test_malformed_batch_dropped(self, pipeline):
        assert pipeline.handle_batch(b'garbage') == []
        assert pipeline.stats['dropped_batches'] == 1

    def test_outside_records_never_queued(self, pipeline, notifier):
        payload = json.dumps([
            make_packet('FAR', lat=10.0, lon=10.0),
            make_packet('X1'),
        ])

        futures = pipeline.handle_batch(payload)
        wait(futures, timeout=5)

        assert len(futures) == 1
        assert len(notifier.sent) == 1
        assert pipeline.stats['records'] == 2
        assert pipeline.stats['skipped_outside_boundary'] == 1

    def test_duplicates_collapse_to_one_notification(self, pipeline, notifier):
        payload = json.dumps([
            make_packet('X1', frame=1, uploader_callsign='A'),
            make_packet('X1', frame=2, uploader_callsign='B'),
            make_packet('X1', frame=2, uploader_callsign='C'),
        ])

        futures = pipeline.handle_batch(payload)
        wait(futures, timeout=5)

        assert len(futures) == 1
        assert len(notifier.sent) == 1
        fields = [f.name for f in notifier.sent[0].embeds[0].fields]
        assert 'First detected by: B' in fields

    def test_distinct_serials_all_processed(self, pipeline, notifier):
        payload = json.dumps([make_packet(f'S{i}') for i in range(6)])

        futures = pipeline.handle_batch(payload)
        wait(futures, timeout=5)

        assert sorted(f.result() for f in futures) == [Outcome.NEW] * 6
        assert len(notifier.sent) == 6

    def test_same_serial_in_flight_is_dropped(self):
        policy = BlockingPolicy()
        p = SondePipeline(policy, Geofence(BOUNDARY), worker_threads=2)
        try:
            first = p.handle_batch(json.dumps([make_packet('X1', frame=1)]))
            assert policy.entered.wait(timeout=5)

            second = p.handle_batch(json.dumps([make_packet('X1', frame=2)]))
            wait(second, timeout=5)
            assert second[0].result() is None

            policy.release.set()
            wait(first, timeout=5)
            assert first[0].result() == Outcome.NEW
            assert policy.calls == ['X1']
        finally:
            policy.release.set()
            p.shutdown(wait=True)

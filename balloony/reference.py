"""
Receiver reference set and its background refresher.

The receiver list is read by every in-flight update (to find who is near
a predicted landing) and replaced wholesale every 12 hours. Readers share
access; a refresh takes the write side just long enough to swap in the
new index.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional, Tuple

from balloony.config import RECEIVERS_UPDATE_INTERVAL
from balloony.geo import ProximityIndex
from balloony.models import Point

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or one writer. Writers are not starved."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ReferencePointSet:
    """
    Shared, replaceable point set.

    Starts empty; lookups against an empty set raise EmptyPointSetError
    rather than returning a wrong nearest point.
    """

    def __init__(self, points: Iterable[Point] = ()):
        self._index = ProximityIndex(points)
        self._lock = ReadWriteLock()
        self._updated_at: Optional[float] = None

    def replace(self, points: Iterable[Point]) -> int:
        """Swap in a new point set. Returns its size."""
        index = ProximityIndex(points)
        with self._lock.write():
            self._index = index
            self._updated_at = time.time()
        return len(index)

    def closest(self, lat: float, lon: float) -> Tuple[Point, float]:
        with self._lock.read():
            return self._index.closest(lat, lon)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._index)

    @property
    def updated_at(self) -> Optional[float]:
        return self._updated_at


class ReceiverRefresher:
    """
    Keeps a ReferencePointSet in sync with the SondeHub listener list.

    A failed fetch is logged and the previous list is kept.
    """

    def __init__(
        self,
        client,
        reference: ReferencePointSet,
        interval: float = RECEIVERS_UPDATE_INTERVAL,
    ):
        self.client = client
        self.reference = reference
        self.interval = interval

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._refresh_count = 0
        self._error_count = 0

    def refresh(self) -> bool:
        """Fetch and swap once. Returns True on success."""
        try:
            receivers = self.client.get_receivers()
        except Exception as e:
            self._error_count += 1
            logger.error(f'Error updating receivers: {e}')
            return False

        count = self.reference.replace(receivers)
        self._refresh_count += 1
        logger.info(f'Receivers list updated: {count} receivers loaded')
        return True

    def run_continuous(self) -> None:
        """Refresh every `interval` seconds until stop() is called."""
        while not self._stop.wait(self.interval):
            self.refresh()

    def start_background(self, refresh_now: bool = True) -> None:
        """
        Start the refresh loop in a daemon thread.

        With refresh_now the first fetch happens synchronously, so the
        receiver list is populated before telemetry starts arriving.
        """
        if self._thread and self._thread.is_alive():
            logger.warning('Receiver refresher already running')
            return

        if refresh_now:
            self.refresh()

        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_continuous,
            name='receiver-refresher',
            daemon=True,
        )
        self._thread.start()
        logger.info(f'Receiver refresher started (interval={self.interval}s)')

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)

    @property
    def stats(self) -> dict:
        return {
            'receivers': len(self.reference),
            'refresh_count': self._refresh_count,
            'error_count': self._error_count,
            'last_refresh': self.reference.updated_at,
            'running': bool(self._thread and self._thread.is_alive()),
        }

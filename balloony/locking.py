"""
Single-flight claim/release per sonde serial.

Several receivers report the same sonde within milliseconds of each other.
Only one worker may process a given serial at a time; the others skip their
record instead of waiting, since a newer one will follow shortly.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Set

logger = logging.getLogger(__name__)


class DeviceLock:
    """
    Non-blocking, non-queueing claim table keyed by serial.

    The internal mutex is only held for the set lookup itself, never
    across network I/O.
    """

    def __init__(self):
        self._claimed: Set[str] = set()
        self._lock = threading.Lock()

    def claim(self, serial: str) -> bool:
        """Claim `serial`. Returns False, changing nothing, if already claimed."""
        with self._lock:
            if serial in self._claimed:
                return False
            self._claimed.add(serial)
            return True

    def release(self, serial: str) -> None:
        """Clear the claim on `serial`. Safe to call when not claimed."""
        with self._lock:
            self._claimed.discard(serial)

    @contextmanager
    def claimed(self, serial: str) -> Iterator[bool]:
        """
        Claim for the duration of a with-block.

        Yields whether the claim succeeded; a successful claim is released
        on every exit path, including exceptions.
        """
        acquired = self.claim(serial)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(serial)

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)

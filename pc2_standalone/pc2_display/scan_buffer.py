"""Bounded FIFO of decoded scans shared by the ingestion and render threads."""
import threading
from collections import deque
from typing import List

from .types import Scan


class ScanBuffer:
    """Capacity-bounded scan history with slot reuse.

    Every method takes ``lock``; callers that need several operations to be
    atomic (recolor, retransform, snapshot) hold ``lock`` around them. The
    lock is re-entrant so those callers can still use the methods below.
    """

    def __init__(self, capacity: int = 1):
        self.lock = threading.RLock()
        self._scans = deque()
        self._capacity = max(1, int(capacity))
        self.generation = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self):
        with self.lock:
            return len(self._scans)

    def __iter__(self):
        """Iterate oldest first. Hold ``lock`` while consuming the iterator."""
        return iter(self._scans)

    def scans(self) -> List[Scan]:
        """Copy of the buffered scans, oldest first."""
        with self.lock:
            return list(self._scans)

    def acquire_slot(self) -> Scan:
        """Scan to fill for the next push.

        At capacity the oldest scan is evicted and handed back so its array
        storage can be reused; otherwise a fresh scan is returned. The scan is
        stamped with the current generation.
        """
        with self.lock:
            scan = None
            if len(self._scans) >= self._capacity:
                scan = self._scans.popleft()
            while len(self._scans) >= self._capacity:
                self._scans.popleft()
            if scan is None:
                scan = Scan()
            scan.generation = self.generation
            return scan

    def push(self, scan: Scan) -> bool:
        """Append ``scan``, evicting oldest-first to stay within capacity.

        Returns:
            False (and drops the scan) if the buffer was cleared after the
            scan's slot was acquired.
        """
        with self.lock:
            if scan.generation != self.generation:
                return False
            self._scans.append(scan)
            while len(self._scans) > self._capacity:
                self._scans.popleft()
            return True

    def resize(self, capacity: int):
        """Change capacity; shrinking evicts from the front."""
        with self.lock:
            self._capacity = max(1, int(capacity))
            while len(self._scans) > self._capacity:
                self._scans.popleft()

    def clear(self):
        """Drop every scan and invalidate slots handed out before now."""
        with self.lock:
            self._scans.clear()
            self.generation += 1

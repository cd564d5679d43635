import contextlib
import heapq
import logging
from typing import Callable, Iterator, List, Optional, Tuple

from wsmux.session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Slot-indexed arena of live sessions.

    Removed slots are tombstoned (set to None) instead of shifted, and reused
    lowest-first by later admissions. A slot freed while a scan is running
    only becomes reusable once that scan has finished, so a session admitted
    after the scan can never be skipped or visited twice by it.
    """

    def __init__(self) -> None:
        self._slots: List[Optional[Session]] = []
        self._free: List[int] = []
        self._released: List[int] = []
        self._scanning = False
        self._live = 0

    def __len__(self) -> int:
        return self._live

    def __contains__(self, slot: object) -> bool:
        return self.get(slot) is not None  # type: ignore[arg-type]

    @property
    def capacity(self) -> int:
        """Number of slots allocated, live or tombstoned."""
        return len(self._slots)

    def get(self, slot: int) -> Optional[Session]:
        if not isinstance(slot, int) or not 0 <= slot < len(self._slots):
            return None
        return self._slots[slot]

    def admit(self, session: Session) -> int:
        if self._scanning:
            raise RuntimeError("cannot admit a session while the registry is scanned")

        if self._free:
            slot = heapq.heappop(self._free)
            self._slots[slot] = session
        else:
            slot = len(self._slots)
            self._slots.append(session)

        session.slot = slot
        self._live += 1
        logger.debug("Admitted %r", session)
        return slot

    def remove(self, slot: int) -> Session:
        session = self.get(slot)
        if session is None:
            raise KeyError(slot)

        self._slots[slot] = None
        self._live -= 1
        if self._scanning:
            self._released.append(slot)
        else:
            heapq.heappush(self._free, slot)
        return session

    def scan(self) -> Iterator[Tuple[int, Session]]:
        """Yield `(slot, session)` for live slots in slot order."""
        if self._scanning:
            raise RuntimeError("registry scan already in progress")

        self._scanning = True
        try:
            # slots appended mid-scan are impossible, admission is refused
            for slot in range(len(self._slots)):
                session = self._slots[slot]
                if session is not None:
                    yield slot, session
        finally:
            self._scanning = False
            for slot in self._released:
                heapq.heappush(self._free, slot)
            self._released.clear()

    def for_each_live(self, fn: Callable[[int, Session], None]) -> None:
        with contextlib.closing(self.scan()) as live:
            for slot, session in live:
                fn(slot, session)

    def sessions(self) -> List[Session]:
        """Snapshot of the live sessions in slot order."""
        return [session for session in self._slots if session is not None]

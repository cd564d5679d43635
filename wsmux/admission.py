import logging
from typing import List, Optional

import anyio

from wsmux.transport import Connection

logger = logging.getLogger(__name__)


class AdmissionQueueFull(Exception):
    pass


class AdmissionQueue:
    """
    Bounded FIFO of accepted connections waiting for admission.

    Backed by an anyio memory object stream: `put` blocks while the queue is
    full, so a slow coordinator throttles the acceptor instead of dropping
    connections.
    """

    DEFAULT_CAPACITY = 10

    def __init__(self, capacity: Optional[int] = None) -> None:
        capacity = self.DEFAULT_CAPACITY if capacity is None else capacity
        if not isinstance(capacity, int):
            raise TypeError("capacity must be int")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._send, self._receive = anyio.create_memory_object_stream(
            max_buffer_size=capacity
        )

    def __len__(self) -> int:
        return self._receive.statistics().current_buffer_used

    @property
    def waiting_producers(self) -> int:
        return self._send.statistics().tasks_waiting_send

    async def put(self, connection: Connection) -> None:
        logger.debug("Queueing connection from %s", connection.remote_address)
        await self._send.send(connection)

    def put_nowait(self, connection: Connection) -> None:
        try:
            self._send.send_nowait(connection)
        except anyio.WouldBlock:
            raise AdmissionQueueFull(
                f"admission queue full ({self.capacity} pending)"
            ) from None

    def get_nowait(self) -> Optional[Connection]:
        try:
            return self._receive.receive_nowait()
        except anyio.WouldBlock:
            return None

    def drain(self, limit: Optional[int] = None) -> List[Connection]:
        """Take up to `limit` (default: capacity) queued connections in order."""
        limit = self.capacity if limit is None else limit
        drained = []
        while len(drained) < limit:
            connection = self.get_nowait()
            if connection is None:
                break
            drained.append(connection)
        return drained

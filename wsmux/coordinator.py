import contextlib
import logging
from typing import Optional, Union

import anyio
import anyio.abc

from wsmux.admission import AdmissionQueue
from wsmux.appstatus import AppStatus
from wsmux.registry import SessionRegistry
from wsmux.router import MessageRouter, default_router
from wsmux.session import Router, Session, check_timeout
from wsmux.transport import Connection

logger = logging.getLogger(__name__)


class Coordinator:
    """
    Single control loop multiplexing many duplex connections.

    Every tick, in fixed order:
    - drain the admission queue into the registry
    - for each live session: reap it if it asked to close, otherwise issue a
      read when none is in flight and flush its pending writes
    - sleep for the tick interval

    The coordinator task owns all registry mutation and all writes; only reads
    run concurrently, as child tasks of the coordinator's task group.
    """

    DEFAULT_TICK_INTERVAL = 0.01
    DEFAULT_READ_TIMEOUT = 60
    DEFAULT_SEND_TIMEOUT = 5
    DEFAULT_MAX_SESSIONS = 256

    def __init__(
        self,
        router: Optional[Union[MessageRouter, Router]] = None,
        admission: Optional[AdmissionQueue] = None,
        tick_interval: Optional[float] = None,
        read_timeout: Optional[float] = DEFAULT_READ_TIMEOUT,
        send_timeout: Optional[float] = DEFAULT_SEND_TIMEOUT,
        max_sessions: Optional[int] = DEFAULT_MAX_SESSIONS,
        outbound_limit: Optional[int] = None,
    ) -> None:
        self.router = router if router is not None else default_router()
        self.admission = admission if admission is not None else AdmissionQueue()
        self.registry = SessionRegistry()
        self.tick_interval = (
            self.DEFAULT_TICK_INTERVAL if tick_interval is None else tick_interval
        )
        self.read_timeout = read_timeout
        self.send_timeout = send_timeout
        self.max_sessions = max_sessions
        self.outbound_limit = outbound_limit

        self.running = False
        self.ticks = 0
        self.admitted_total = 0
        self.closed_total = 0
        self._stop_requested = False
        self._task_group: Optional[anyio.abc.TaskGroup] = None

    @property
    def tick_interval(self) -> Union[int, float]:
        return self._tick_interval

    @tick_interval.setter
    def tick_interval(self, value: Union[int, float]) -> None:
        if not isinstance(value, (int, float)):
            raise TypeError("tick interval must be int or float")
        if value < 0:
            raise ValueError("tick interval must not be negative")
        self._tick_interval = value

    @property
    def read_timeout(self) -> Optional[float]:
        return self._read_timeout

    @read_timeout.setter
    def read_timeout(self, value: Optional[float]) -> None:
        self._read_timeout = check_timeout("read timeout", value)

    @property
    def send_timeout(self) -> Optional[float]:
        return self._send_timeout

    @send_timeout.setter
    def send_timeout(self, value: Optional[float]) -> None:
        self._send_timeout = check_timeout("send timeout", value)

    @property
    def max_sessions(self) -> Optional[int]:
        return self._max_sessions

    @max_sessions.setter
    def max_sessions(self, value: Optional[int]) -> None:
        if value is not None and (not isinstance(value, int) or value < 1):
            raise ValueError("max sessions must be a positive int or None")
        self._max_sessions = value

    def stop(self) -> None:
        """Ask the loop to exit after the current tick."""
        self._stop_requested = True

    def _should_exit(self) -> bool:
        return self._stop_requested or AppStatus.exit_requested()

    async def run(
        self, *, task_status: anyio.abc.TaskStatus = anyio.TASK_STATUS_IGNORED
    ) -> None:
        """Run ticks until `stop()` or server shutdown, then close every session."""
        if self.running:
            raise RuntimeError("coordinator is already running")

        self._stop_requested = False
        async with anyio.create_task_group() as task_group:
            self._task_group = task_group
            self.running = True
            logger.info("Coordinator started (tick interval %ss)", self.tick_interval)
            task_status.started()
            try:
                while not self._should_exit():
                    await self.tick()
                    await anyio.sleep(self.tick_interval)
            finally:
                with anyio.CancelScope(shield=True):
                    await self._close_all()
                self.running = False
                self._task_group = None
                task_group.cancel_scope.cancel()
        logger.info("Coordinator stopped")

    async def tick(self) -> None:
        if self._task_group is None:
            raise RuntimeError("tick() requires a running coordinator")

        self.ticks += 1
        self._admit_pending()

        with contextlib.closing(self.registry.scan()) as live:
            for slot, session in live:
                await self._service(slot, session)

    async def _service(self, slot: int, session: Session) -> None:
        if session.close_requested:
            await session.close()
            self.registry.remove(slot)
            self.closed_total += 1
            logger.info(
                "Session %s removed from slot %d",
                session.remote_address,
                slot,
                extra={"remote": session.remote_address, "event": "removed"},
            )
            return

        if not session.read_in_flight:
            session.start_read(self._task_group)

        if session.pending_outbound:
            await session.flush()

    def _admit_pending(self) -> None:
        limit = self.admission.capacity
        if self.max_sessions is not None:
            limit = min(limit, self.max_sessions - len(self.registry))
            if limit <= 0:
                if len(self.admission):
                    logger.debug(
                        "Session cap %d reached, %d connections waiting",
                        self.max_sessions,
                        len(self.admission),
                    )
                return

        for connection in self.admission.drain(limit):
            session = Session(
                connection,
                router=self.router,
                read_timeout=self.read_timeout,
                send_timeout=self.send_timeout,
                outbound_limit=self.outbound_limit,
            )
            slot = self.registry.admit(session)
            self.admitted_total += 1
            logger.info(
                "Session %s admitted to slot %d",
                session.remote_address,
                slot,
                extra={"remote": session.remote_address, "event": "admitted"},
            )

    async def _close_all(self) -> None:
        with contextlib.closing(self.registry.scan()) as live:
            for slot, session in live:
                await session.close()
                self.registry.remove(slot)
                self.closed_total += 1

        # connections never admitted still hold their acceptor open
        connection = self.admission.get_nowait()
        while connection is not None:
            logger.debug("Closing queued connection from %s", connection.remote_address)
            await connection.close()
            connection = self.admission.get_nowait()

    def send(self, slot: int, text: str) -> bool:
        """Queue `text` for the session in `slot`; False if the slot is empty."""
        session = self.registry.get(slot)
        if session is None:
            return False
        session.queue(text)
        return True

    def broadcast(self, text: str) -> int:
        sessions = [s for s in self.registry.sessions() if not s.close_requested]
        for session in sessions:
            session.queue(text)
        return len(sessions)

    def close_session(self, slot: int) -> bool:
        session = self.registry.get(slot)
        if session is None:
            return False
        session.request_close()
        return True

    async def accept(self, connection: Connection) -> None:
        """Hand a newly established connection to the loop; blocks while the queue is full."""
        await self.admission.put(connection)

    def stats(self) -> dict:
        return {
            "running": self.running,
            "live_sessions": len(self.registry),
            "queued_connections": len(self.admission),
            "admitted_total": self.admitted_total,
            "closed_total": self.closed_total,
            "ticks": self.ticks,
        }

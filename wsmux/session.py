import enum
import logging
from collections import deque
from typing import Callable, Deque, Optional

import anyio
import anyio.abc

from wsmux.router import route as default_route
from wsmux.transport import (
    Connection,
    PeerClosed,
    SendTimeoutError,
    StalledReadError,
    TransportError,
    TransportReadError,
    TransportWriteError,
)

logger = logging.getLogger(__name__)

Router = Callable[[str], Optional[str]]


class OutboundQueueFull(Exception):
    pass


def check_timeout(name: str, value: Optional[float]) -> Optional[float]:
    """Validate a timeout in seconds; `None` disables it."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be int, float or None")
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


class SessionState(enum.Enum):
    IDLE = "idle"
    READ_PENDING = "read_pending"
    CLOSING = "closing"
    CLOSED = "closed"


class Session:
    """
    Read/write state machine for one duplex connection.

    Reads run as child tasks of the coordinator's task group, at most one at a
    time; their completion only updates fields on the session. Writes are
    flushed by the coordinator from `pending_outbound` in arrival order.
    """

    DEFAULT_OUTBOUND_LIMIT = 64

    def __init__(
        self,
        connection: Connection,
        router: Optional[Router] = None,
        read_timeout: Optional[float] = None,
        send_timeout: Optional[float] = None,
        outbound_limit: Optional[int] = None,
    ) -> None:
        self.connection = connection
        self.remote_address = getattr(connection, "remote_address", "unknown")
        self.router = router or default_route
        self.read_timeout = read_timeout
        self.send_timeout = send_timeout
        self.outbound_limit = (
            self.DEFAULT_OUTBOUND_LIMIT if outbound_limit is None else outbound_limit
        )

        self.slot: Optional[int] = None
        self.pending_outbound: Deque[str] = deque()
        self.read_in_flight = False
        self.close_requested = False
        self.closed = False
        self.close_reason: Optional[BaseException] = None
        self.messages_received = 0
        self.messages_sent = 0
        self._read_scope: Optional[anyio.CancelScope] = None

    def __repr__(self) -> str:
        return (
            f"<Session remote={self.remote_address!r} slot={self.slot} "
            f"state={self.state.value}>"
        )

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
    def outbound_limit(self) -> int:
        return self._outbound_limit

    @outbound_limit.setter
    def outbound_limit(self, value: int) -> None:
        if not isinstance(value, int):
            raise TypeError("outbound limit must be int")
        if value < 1:
            raise ValueError("outbound limit must be at least 1")
        self._outbound_limit = value

    @property
    def state(self) -> SessionState:
        if self.closed:
            return SessionState.CLOSED
        if self.close_requested:
            return SessionState.CLOSING
        if self.read_in_flight:
            return SessionState.READ_PENDING
        return SessionState.IDLE

    def _log(self, level: int, event: str, msg: str, *args, **kwargs) -> None:
        logger.log(
            level,
            "Session %s " + msg,
            self.remote_address,
            *args,
            extra={"remote": self.remote_address, "event": event},
            **kwargs,
        )

    def start_read(self, task_group: anyio.abc.TaskGroup) -> bool:
        """Issue one asynchronous read. Returns False if the session is closing."""
        if self.read_in_flight:
            raise RuntimeError(f"read already in flight for {self!r}")
        if self.close_requested or self.closed:
            return False

        self.read_in_flight = True
        # created up front so a close before the task starts still cancels it
        self._read_scope = anyio.CancelScope()
        task_group.start_soon(self._read, self._read_scope)
        return True

    async def _read(self, scope: anyio.CancelScope) -> None:
        with scope:
            try:
                message = await self._receive()
            except PeerClosed as e:
                self._fail(
                    e,
                    "peer_closed",
                    "closed by peer (code=%s)",
                    e.code,
                    level=logging.INFO,
                )
            except TransportReadError as e:
                self._fail(e, "read_failed", "read failed: %s", e)
            except Exception as e:
                self._fail(
                    TransportReadError(str(e)),
                    "read_failed",
                    "read raised",
                    exc_info=True,
                )
            else:
                self._handle_message(message)
            finally:
                self._read_scope = None
                self.read_in_flight = False

    async def _receive(self) -> Optional[str]:
        with anyio.move_on_after(self.read_timeout):
            return await self.connection.receive_text()
        raise StalledReadError(f"no message within {self.read_timeout}s")

    def _handle_message(self, message: Optional[str]) -> None:
        if message is None:
            self._log(
                logging.WARNING, "unsupported", "received unsupported message type"
            )
            return

        self.messages_received += 1
        self._log(logging.INFO, "received", "received message: %s", message)
        reply = self.router(message)
        if reply is None:
            self._log(
                logging.INFO, "unrecognized", "unrecognized message: %s", message
            )
            return
        self.queue(reply)

    def queue(self, text: str) -> None:
        """Append `text` to the outbound FIFO; overflow closes the session."""
        if self.close_requested or self.closed:
            self._log(logging.DEBUG, "dropped", "is closing, dropping outbound message")
            return
        if len(self.pending_outbound) >= self.outbound_limit:
            self._fail(
                OutboundQueueFull(f"{self.outbound_limit} messages pending"),
                "outbound_overflow",
                "outbound queue full, closing slow consumer",
                level=logging.WARNING,
            )
            return
        self.pending_outbound.append(text)
        self._log(logging.DEBUG, "queued", "queued reply: %s", text)

    async def flush(self) -> None:
        """Write pending messages in order; a failure marks the session closing."""
        while self.pending_outbound and not self.close_requested:
            text = self.pending_outbound[0]
            try:
                with anyio.move_on_after(self.send_timeout) as cancel_scope:
                    await self.connection.send_text(text)
                if cancel_scope.cancel_called:
                    raise SendTimeoutError(f"send exceeded {self.send_timeout}s")
            except TransportWriteError as e:
                self._fail(e, "write_failed", "write failed: %s", e)
                return
            except Exception as e:
                self._fail(
                    TransportWriteError(str(e)),
                    "write_failed",
                    "write raised",
                    exc_info=True,
                )
                return

            self.pending_outbound.popleft()
            self.messages_sent += 1
            self._log(logging.DEBUG, "sent", "sent message: %s", text)

    def request_close(self, reason: Optional[BaseException] = None) -> None:
        if self.close_requested or self.closed:
            return
        self.close_requested = True
        self.close_reason = reason
        self._log(logging.INFO, "close_requested", "close requested")

    def _fail(
        self,
        error: BaseException,
        event: str,
        msg: str,
        *args,
        level: int = logging.ERROR,
        **kwargs,
    ) -> None:
        self._log(level, event, msg, *args, **kwargs)
        self.close_requested = True
        if self.close_reason is None:
            self.close_reason = error

    async def close(self) -> None:
        """Close the connection and cancel any outstanding read. Idempotent."""
        if self.closed:
            return
        self.closed = True
        self.close_requested = True
        if self._read_scope is not None:
            self._read_scope.cancel()
        self.pending_outbound.clear()

        with anyio.CancelScope(shield=True):
            try:
                await self.connection.close()
            except TransportError as e:
                self._log(logging.WARNING, "close_failed", "close failed: %s", e)
        self._log(logging.INFO, "closed", "closed")

import logging
import math
from typing import List, Optional, Protocol, Union

import anyio
import anyio.lowlevel
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger(__name__)


class TransportError(Exception):
    pass


class TransportReadError(TransportError):
    pass


class PeerClosed(TransportReadError):
    """The peer closed the connection cleanly."""

    def __init__(self, code: Optional[int] = None, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"connection closed by peer (code={code})")


class StalledReadError(TransportReadError):
    pass


class TransportWriteError(TransportError):
    pass


class SendTimeoutError(TransportWriteError, TimeoutError):
    pass


class Connection(Protocol):
    """
    Duplex text-message connection consumed by a Session.

    `receive_text` yields one whole message per call, or None for a frame
    that carries no text. At most one `receive_text` call may be outstanding.
    """

    remote_address: str

    async def receive_text(self) -> Optional[str]:
        ...

    async def send_text(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...


class WebSocketConnection:
    """Adapts a Starlette `WebSocket` to the `Connection` protocol."""

    def __init__(self, websocket: WebSocket, close_code: int = 1000) -> None:
        self.websocket = websocket
        self.close_code = close_code
        client = websocket.client
        self.remote_address = (
            f"{client.host}:{client.port}" if client is not None else "unknown"
        )
        self._closed = anyio.Event()

    async def receive_text(self) -> Optional[str]:
        try:
            message = await self.websocket.receive()
        except (RuntimeError, OSError) as e:
            raise TransportReadError(str(e)) from e

        if message["type"] == "websocket.disconnect":
            raise PeerClosed(message.get("code"), message.get("reason") or "")
        return message.get("text")

    async def send_text(self, text: str) -> None:
        try:
            await self.websocket.send_text(text)
        except WebSocketDisconnect as e:
            raise TransportWriteError(f"peer disconnected (code={e.code})") from e
        except (RuntimeError, OSError) as e:
            raise TransportWriteError(str(e)) from e

    async def close(self) -> None:
        try:
            if (
                self.websocket.client_state != WebSocketState.DISCONNECTED
                and self.websocket.application_state != WebSocketState.DISCONNECTED
            ):
                await self.websocket.close(self.close_code)
        except (RuntimeError, OSError) as e:
            logger.debug("Closing websocket from %s failed: %s", self.remote_address, e)
        finally:
            self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()


class MemoryConnection:
    """
    In-process connection backed by an anyio memory object stream.

    Inbound messages are fed with `feed`/`feed_nowait`; everything written to
    the connection is collected in `sent`. Feeding an exception instance makes
    the next read raise it.
    """

    def __init__(
        self, remote_address: str = "memory", buffer_size: float = math.inf
    ) -> None:
        self.remote_address = remote_address
        self._inbound_send, self._inbound_receive = anyio.create_memory_object_stream(
            buffer_size
        )
        self.sent: List[str] = []
        self.fail_writes = False
        self.is_closed = False
        self.close_calls = 0

    async def feed(self, item: Union[str, bytes, BaseException]) -> None:
        await self._inbound_send.send(item)

    def feed_nowait(self, item: Union[str, bytes, BaseException]) -> None:
        self._inbound_send.send_nowait(item)

    def disconnect(self) -> None:
        """Simulate a clean close from the peer once queued input is consumed."""
        self._inbound_send.close()

    async def receive_text(self) -> Optional[str]:
        try:
            item = await self._inbound_receive.receive()
        except (anyio.EndOfStream, anyio.ClosedResourceError):
            raise PeerClosed(1000) from None

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, bytes):
            return None
        return item

    async def send_text(self, text: str) -> None:
        await anyio.lowlevel.checkpoint()
        if self.is_closed or self.fail_writes:
            raise TransportWriteError(f"write to {self.remote_address} failed")
        self.sent.append(text)

    async def close(self) -> None:
        self.close_calls += 1
        self.is_closed = True
        self._inbound_send.close()
        self._inbound_receive.close()

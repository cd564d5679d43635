from wsmux.admission import AdmissionQueue, AdmissionQueueFull
from wsmux.coordinator import Coordinator
from wsmux.registry import SessionRegistry
from wsmux.router import MessageRouter, default_router, route
from wsmux.session import OutboundQueueFull, Session, SessionState
from wsmux.transport import (
    MemoryConnection,
    PeerClosed,
    SendTimeoutError,
    StalledReadError,
    TransportError,
    TransportReadError,
    TransportWriteError,
    WebSocketConnection,
)

__version__ = "0.3.0"

__all__ = [
    "AdmissionQueue",
    "AdmissionQueueFull",
    "Coordinator",
    "MemoryConnection",
    "MessageRouter",
    "OutboundQueueFull",
    "PeerClosed",
    "SendTimeoutError",
    "Session",
    "SessionRegistry",
    "SessionState",
    "StalledReadError",
    "TransportError",
    "TransportReadError",
    "TransportWriteError",
    "WebSocketConnection",
    "default_router",
    "route",
]

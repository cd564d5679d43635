import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

Handler = Callable[[str], Optional[str]]
Reply = Union[str, Mapping[str, Any], Handler]


def encode_reply(value: Union[str, Mapping[str, Any]]) -> str:
    """Encode a reply for the wire: text as is, mappings as compact JSON."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return json.dumps(dict(value), separators=(",", ":"), ensure_ascii=False)
    raise TypeError(f"reply must be str, mapping or callable, got: {type(value)!r}")


class MessageRouter:
    """
    Maps a complete inbound text message to zero or one outbound reply.

    Commands are matched exactly (case-sensitive) through a lookup table, so
    new commands are added with `register` or the `command` decorator without
    touching the session or coordinator code.
    """

    def __init__(self, routes: Optional[Mapping[str, Reply]] = None) -> None:
        self._handlers: Dict[str, Handler] = {}
        if routes is not None:
            for command, reply in routes.items():
                self.register(command, reply)

    def register(self, command: str, reply: Reply) -> None:
        if not isinstance(command, str):
            raise TypeError("command must be str")

        if callable(reply):
            handler = reply
        else:
            # constant replies are encoded once, here
            encoded = encode_reply(reply)

            def handler(message: str, _encoded: str = encoded) -> str:
                return _encoded

        if command in self._handlers:
            logger.debug("Replacing handler for command %r", command)
        self._handlers[command] = handler

    def command(self, name: str) -> Callable[[Handler], Handler]:
        """Decorator registering a handler function for `name`."""

        def decorator(fn: Handler) -> Handler:
            self.register(name, fn)
            return fn

        return decorator

    def commands(self):
        return frozenset(self._handlers)

    def route(self, message: str) -> Optional[str]:
        handler = self._handlers.get(message)
        if handler is None:
            return None
        return handler(message)

    __call__ = route

    def __contains__(self, command: object) -> bool:
        return command in self._handlers


def default_router() -> MessageRouter:
    return MessageRouter({"PING": "PONG", "Hello?": {"message": "Hi!"}})


_default = default_router()


def route(message: str) -> Optional[str]:
    """Route `message` through the built-in command table."""
    return _default.route(message)

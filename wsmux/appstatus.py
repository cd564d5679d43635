import logging
import signal
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


def _get_uvicorn_server():
    """
    Try to get the uvicorn Server instance via signal handler introspection.

    When uvicorn registers signal handlers, they're bound methods on the Server
    instance, so the Server is reachable through the handler's __self__.

    Returns None if not running under uvicorn or if introspection fails.
    """
    try:
        handler = signal.getsignal(signal.SIGTERM)
        if hasattr(handler, "__self__"):
            server = handler.__self__
            if hasattr(server, "should_exit"):
                return server
    except (ValueError, OSError):
        pass
    return None


class AppStatus:
    """Captures a shutdown signal from uvicorn so coordinator loops can close their sessions."""

    should_exit = False
    original_handler: Optional[Callable] = None
    _shutdown_callbacks: List[Callable[[], None]] = []

    @staticmethod
    def handle_exit(*args, **kwargs):
        AppStatus.should_exit = True
        for callback in list(AppStatus._shutdown_callbacks):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in shutdown callback: {e}")
        if AppStatus.original_handler is not None:
            AppStatus.original_handler(*args, **kwargs)

    @classmethod
    def add_shutdown_callback(cls, callback: Callable[[], None]) -> None:
        cls._shutdown_callbacks.append(callback)

    @classmethod
    def remove_shutdown_callback(cls, callback: Callable[[], None]) -> None:
        if callback in cls._shutdown_callbacks:
            cls._shutdown_callbacks.remove(callback)

    @classmethod
    def exit_requested(cls) -> bool:
        """True once our patched handler ran or uvicorn's own flag is set."""
        if cls.should_exit:
            return True
        server = _get_uvicorn_server()
        if server is not None and server.should_exit:
            cls.should_exit = True  # keep state in sync
            return True
        return False

    @classmethod
    def reset(cls) -> None:
        """Reset state (useful for testing)."""
        cls.should_exit = False
        cls._shutdown_callbacks.clear()


try:
    from uvicorn.main import Server

    AppStatus.original_handler = Server.handle_exit
    Server.handle_exit = AppStatus.handle_exit  # type: ignore
except ImportError:
    logger.debug(
        "Uvicorn not installed. Graceful shutdown on server termination disabled."
    )

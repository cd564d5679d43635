from dataclasses import dataclass
from typing import Optional

from starlette.config import Config

from wsmux.admission import AdmissionQueue
from wsmux.coordinator import Coordinator
from wsmux.session import Session


def _optional_float(value) -> Optional[float]:
    if isinstance(value, str) and value.strip().lower() in ("", "none", "off"):
        return None
    return float(value)


def _optional_int(value) -> Optional[int]:
    if isinstance(value, str) and value.strip().lower() in ("", "none", "off"):
        return None
    return int(value)


@dataclass
class Settings:
    host: str = "127.0.0.1"
    port: int = 80
    log_level: str = "info"
    tick_interval: float = Coordinator.DEFAULT_TICK_INTERVAL
    read_timeout: Optional[float] = Coordinator.DEFAULT_READ_TIMEOUT
    send_timeout: Optional[float] = Coordinator.DEFAULT_SEND_TIMEOUT
    max_sessions: Optional[int] = Coordinator.DEFAULT_MAX_SESSIONS
    admission_capacity: int = AdmissionQueue.DEFAULT_CAPACITY
    outbound_limit: int = Session.DEFAULT_OUTBOUND_LIMIT

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "Settings":
        """Read `WSMUX_*` settings from the environment (or an .env file via `config`)."""
        config = config if config is not None else Config()
        defaults = cls()
        return cls(
            host=config("WSMUX_HOST", default=defaults.host),
            port=config("WSMUX_PORT", cast=int, default=defaults.port),
            log_level=config("WSMUX_LOG_LEVEL", default=defaults.log_level).lower(),
            tick_interval=config(
                "WSMUX_TICK_INTERVAL", cast=float, default=defaults.tick_interval
            ),
            read_timeout=config(
                "WSMUX_READ_TIMEOUT",
                cast=_optional_float,
                default=defaults.read_timeout,
            ),
            send_timeout=config(
                "WSMUX_SEND_TIMEOUT",
                cast=_optional_float,
                default=defaults.send_timeout,
            ),
            max_sessions=config(
                "WSMUX_MAX_SESSIONS", cast=_optional_int, default=defaults.max_sessions
            ),
            admission_capacity=config(
                "WSMUX_ADMISSION_CAPACITY",
                cast=int,
                default=defaults.admission_capacity,
            ),
            outbound_limit=config(
                "WSMUX_OUTBOUND_LIMIT", cast=int, default=defaults.outbound_limit
            ),
        )

    def build_coordinator(self, router=None) -> Coordinator:
        return Coordinator(
            router=router,
            admission=AdmissionQueue(self.admission_capacity),
            tick_interval=self.tick_interval,
            read_timeout=self.read_timeout,
            send_timeout=self.send_timeout,
            max_sessions=self.max_sessions,
            outbound_limit=self.outbound_limit,
        )

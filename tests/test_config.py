import pytest
from starlette.config import Config

from wsmux.config import Settings
from wsmux.coordinator import Coordinator


def test_defaults():
    settings = Settings.from_config(Config(environ={}))

    assert settings.host == "127.0.0.1"
    assert settings.port == 80
    assert settings.read_timeout == Coordinator.DEFAULT_READ_TIMEOUT
    assert settings.send_timeout == Coordinator.DEFAULT_SEND_TIMEOUT
    assert settings.max_sessions == Coordinator.DEFAULT_MAX_SESSIONS


def test_environment_overrides():
    environ = {
        "WSMUX_HOST": "0.0.0.0",
        "WSMUX_PORT": "8000",
        "WSMUX_LOG_LEVEL": "DEBUG",
        "WSMUX_TICK_INTERVAL": "0.05",
        "WSMUX_READ_TIMEOUT": "none",
        "WSMUX_SEND_TIMEOUT": "2.5",
        "WSMUX_MAX_SESSIONS": "off",
        "WSMUX_ADMISSION_CAPACITY": "4",
        "WSMUX_OUTBOUND_LIMIT": "8",
    }
    settings = Settings.from_config(Config(environ=environ))

    assert settings.host == "0.0.0.0"
    assert settings.port == 8000
    assert settings.log_level == "debug"
    assert settings.tick_interval == 0.05
    assert settings.read_timeout is None
    assert settings.send_timeout == 2.5
    assert settings.max_sessions is None
    assert settings.admission_capacity == 4
    assert settings.outbound_limit == 8


def test_invalid_value_is_rejected():
    with pytest.raises(ValueError):
        Settings.from_config(Config(environ={"WSMUX_PORT": "eighty"}))


def test_build_coordinator():
    settings = Settings(tick_interval=0.02, read_timeout=5, admission_capacity=3)
    coordinator = settings.build_coordinator()

    assert coordinator.tick_interval == 0.02
    assert coordinator.read_timeout == 5
    assert coordinator.admission.capacity == 3
    assert coordinator.outbound_limit == Settings().outbound_limit

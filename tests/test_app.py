import time

import pytest
from starlette import status
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from wsmux.app import create_app
from wsmux.config import Settings
from wsmux.coordinator import Coordinator
from wsmux.router import default_router


@pytest.fixture
def coordinator():
    return Coordinator(tick_interval=0.005)


@pytest.fixture
def client(coordinator):
    with TestClient(create_app(coordinator)) as client:
        yield client


def test_ping_and_hello(client):
    with client.websocket_connect("/") as ws:
        ws.send_text("PING")
        assert ws.receive_text() == "PONG"
        ws.send_text("Hello?")
        assert ws.receive_json() == {"message": "Hi!"}


def test_unrecognized_and_binary_get_no_reply(client, coordinator):
    with client.websocket_connect("/") as ws:
        ws.send_text("xyz123")
        ws.send_bytes(b"\x00")
        ws.send_text("PING")
        # the first reply on the wire answers the PING
        assert ws.receive_text() == "PONG"
        assert coordinator.stats()["live_sessions"] == 1


def test_sessions_are_independent(client, coordinator):
    with client.websocket_connect("/") as first:
        with client.websocket_connect("/") as second:
            second.send_text("Hello?")
            first.send_text("PING")
            assert first.receive_text() == "PONG"
            assert second.receive_json() == {"message": "Hi!"}
            assert coordinator.admitted_total == 2


def test_custom_router():
    router = default_router()

    @router.command("ECHO?")
    def echo(message):
        return "ECHO!"

    coordinator = Coordinator(router=router, tick_interval=0.005)
    with TestClient(create_app(coordinator)) as client:
        with client.websocket_connect("/") as ws:
            ws.send_text("ECHO?")
            assert ws.receive_text() == "ECHO!"


def test_http_routes(client):
    response = client.get("/")
    assert response.status_code == 200
    assert '<script src="/client.js">' in response.text

    response = client.get("/client.js")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/javascript")
    assert 'ws.send("Hello?")' in response.text

    assert client.get("/missing").status_code == 404
    assert client.post("/").status_code == 405


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["running"] is True
    assert body["live_sessions"] == 0


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        assert time.monotonic() < deadline, "condition not reached in time"
        time.sleep(0.005)


def test_client_disconnect_frees_session(client, coordinator):
    with client.websocket_connect("/") as ws:
        ws.send_text("PING")
        assert ws.receive_text() == "PONG"
        assert len(coordinator.registry) == 1

    wait_for(lambda: coordinator.closed_total == 1)
    wait_for(lambda: len(coordinator.registry) == 0)
    assert coordinator.running


def test_connection_refused_after_coordinator_stops(client, coordinator):
    coordinator.stop()
    wait_for(lambda: not coordinator.running)

    with client.websocket_connect("/") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()

    assert exc_info.value.code == status.WS_1001_GOING_AWAY
    assert coordinator.admitted_total == 0
    assert len(coordinator.admission) == 0


def test_coordinator_stops_with_app(coordinator):
    with TestClient(create_app(coordinator)):
        assert coordinator.running
    assert not coordinator.running


def test_create_app_from_settings():
    settings = Settings(tick_interval=0.005, max_sessions=3, admission_capacity=2)
    app = create_app(settings=settings)
    coordinator = app.state.coordinator

    assert coordinator.max_sessions == 3
    assert coordinator.admission.capacity == 2
    with TestClient(app) as client:
        with client.websocket_connect("/") as ws:
            ws.send_text("PING")
            assert ws.receive_text() == "PONG"

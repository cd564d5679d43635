import json

import pytest

from wsmux.router import MessageRouter, default_router, encode_reply, route


@pytest.mark.parametrize(
    "message,expected",
    [
        ("PING", "PONG"),
        ("ping", None),
        ("PING ", None),
        ("xyz123", None),
        ("", None),
        ("hello?", None),
    ],
)
def test_route(message, expected):
    assert route(message) == expected


def test_route_hello_returns_json():
    reply = route("Hello?")
    assert json.loads(reply) == {"message": "Hi!"}
    assert reply == '{"message":"Hi!"}'


def test_route_is_deterministic():
    for message in ("PING", "Hello?", "nope"):
        assert route(message) == route(message) == route(message)


def test_default_routers_are_independent():
    router = default_router()
    router.register("PING", "CHANGED")
    assert router.route("PING") == "CHANGED"
    assert route("PING") == "PONG"
    assert default_router().route("PING") == "PONG"


def test_register_constant_and_mapping():
    router = MessageRouter()
    router.register("A", "a")
    router.register("B", {"n": 1, "text": "ünï"})

    assert router.route("A") == "a"
    assert router.route("B") == '{"n":1,"text":"ünï"}'
    assert "A" in router
    assert router.commands() == frozenset({"A", "B"})


def test_command_decorator_registers_handler():
    router = MessageRouter()
    calls = []

    @router.command("ECHO")
    def echo(message):
        calls.append(message)
        return message.lower()

    assert router("ECHO") == "echo"
    assert calls == ["ECHO"]
    # decorator returns the function unchanged
    assert echo("X") == "x"


def test_handler_may_decline_to_reply():
    router = MessageRouter({"QUIET": lambda message: None})
    assert router.route("QUIET") is None


def test_register_rejects_bad_input():
    router = MessageRouter()
    with pytest.raises(TypeError):
        router.register(1, "x")  # type: ignore
    with pytest.raises(TypeError):
        router.register("X", 42)  # type: ignore


def test_encode_reply():
    assert encode_reply("PONG") == "PONG"
    assert encode_reply({"message": "Hi!"}) == '{"message":"Hi!"}'

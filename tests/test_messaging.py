import threading

import pytest

from prayer_badge.core.messaging import CancellationToken, MessageChannel


@pytest.fixture
def channel():
    channel = MessageChannel(timeout_seconds=0.5)
    yield channel
    channel.close()


def test_request_reply(channel):
    channel.register("GET_TIMEZONE", lambda payload: {"timezone": "UTC", **payload})
    reply = channel.request("GET_TIMEZONE", {"x": 1})
    assert reply.ok
    assert reply.value == {"timezone": "UTC", "x": 1}


def test_unknown_message_type(channel):
    reply = channel.request("NOPE")
    assert not reply.ok
    assert reply.error == "Unknown message type: NOPE"


def test_timeout(channel):
    release = threading.Event()
    channel.register("SLOW", lambda payload: release.wait(5))
    reply = channel.request("SLOW", timeout=0.1)
    release.set()
    assert not reply.ok
    assert reply.error == "timeout"


def test_cancellation(channel):
    release = threading.Event()
    channel.register("SLOW", lambda payload: release.wait(5))
    token = CancellationToken()
    threading.Timer(0.1, token.cancel).start()
    reply = channel.request("SLOW", timeout=2, token=token)
    release.set()
    assert reply.error == "cancelled"


def test_already_cancelled_token_skips_handler(channel):
    calls = []
    channel.register("PING", calls.append)
    token = CancellationToken()
    token.cancel()
    assert channel.request("PING", token=token).error == "cancelled"
    assert calls == []


def test_handler_error_becomes_reply(channel):
    def boom(payload):
        raise ValueError("bad payload")

    channel.register("BOOM", boom)
    reply = channel.request("BOOM")
    assert not reply.ok
    assert reply.error == "bad payload"


def test_unregister_only_matching_handler(channel):
    first = lambda payload: 1  # noqa: E731
    second = lambda payload: 2  # noqa: E731
    channel.register("X", first)
    channel.register("X", second)
    channel.unregister("X", first)
    assert channel.has_receiver("X")
    channel.unregister("X", second)
    assert not channel.has_receiver("X")

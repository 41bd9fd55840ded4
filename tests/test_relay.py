"""Tests for SignalingRelay immediate and queued delivery."""

import pytest

from backend import Connection, ConnectionRegistry
from relay import SignalingRelay


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def relay(registry) -> SignalingRelay:
    return SignalingRelay(registry)


def frames(connection: Connection) -> list:
    out = []
    while not connection.outbox.empty():
        frame = connection.outbox.get_nowait()
        out.append((frame["event"], frame["data"]))
    return out


class TestRelay:
    def test_reachable_target_gets_tagged_payload(self, registry, relay):
        sender = registry.register(Connection(session_id="s1"))
        target = registry.register(Connection(session_id="s2"))

        delivered = relay.relay(sender, "s2", "offer", {"sdp": {"type": "offer", "sdp": "v=0"}})

        assert delivered is True
        assert frames(target) == [("offer", {"sdp": {"type": "offer", "sdp": "v=0"}, "sender": "s1"})]
        assert frames(sender) == []

    def test_sender_is_tagged_with_durable_id_when_bound(self, registry, relay):
        sender = registry.register(Connection(session_id="s1"))
        target = registry.register(Connection(session_id="s2"))
        registry.bind("bob", "s1")

        relay.relay(sender, "s2", "answer", {"sdp": "x"})

        assert frames(target) == [("answer", {"sdp": "x", "sender": "bob"})]

    def test_unreachable_target_is_queued_not_dropped(self, registry, relay):
        sender = registry.register(Connection(session_id="s1"))

        delivered = relay.relay(sender, "alice", "offer", {"sdp": "x"})

        assert delivered is False
        assert [signal.event for signal in registry.pending("alice")] == ["offer"]
        assert frames(sender) == []

    def test_queued_signals_precede_later_live_ones(self, registry, relay):
        sender = registry.register(Connection(session_id="s1"))
        relay.relay(sender, "alice", "offer", {"sdp": "1"})
        relay.relay(sender, "alice", "ice-candidate", {"candidate": "2"})

        target = registry.register(Connection(session_id="s2"))
        registry.bind("alice", "s2")
        relay.relay(sender, "alice", "ice-candidate", {"candidate": "3"})

        assert frames(target) == [
            ("offer", {"sdp": "1", "sender": "s1"}),
            ("ice-candidate", {"candidate": "2", "sender": "s1"}),
            ("ice-candidate", {"candidate": "3", "sender": "s1"}),
        ]

    def test_payload_is_not_mutated(self, registry, relay):
        sender = registry.register(Connection(session_id="s1"))
        registry.register(Connection(session_id="s2"))
        payload = {"sdp": "x"}

        relay.relay(sender, "s2", "offer", payload)

        assert payload == {"sdp": "x"}


class TestBroadcast:
    def test_broadcast_skips_sender(self, registry, relay):
        sender = registry.register(Connection(session_id="s1"))
        others = [registry.register(Connection(session_id=f"s{i}")) for i in (2, 3)]

        count = relay.broadcast(sender, ["s1", "s2", "s3"], "ice-candidate", {"candidate": "c"})

        assert count == 2
        assert frames(sender) == []
        for other in others:
            assert frames(other) == [("ice-candidate", {"candidate": "c", "sender": "s1"})]

import pytest

from backend import Connection
from session import RoomSessionProtocol


def drain_outbox(connection: Connection) -> list[tuple[str, dict]]:
    frames = []
    while not connection.outbox.empty():
        frame = connection.outbox.get_nowait()
        if frame is not None:
            frames.append((frame["event"], frame["data"]))
    return frames


@pytest.fixture
def protocol() -> RoomSessionProtocol:
    """Fresh protocol with the default capacity of 10 viewers."""
    return RoomSessionProtocol(max_viewers=10)


@pytest.fixture
def received():
    """Return and clear the frames queued for a connection."""
    return drain_outbox


@pytest.fixture
def connect(protocol):
    """Open a connection and discard its `connected` greeting."""

    def _connect(display_name=None):
        connection = protocol.connect(display_name=display_name)
        drain_outbox(connection)
        return connection

    return _connect


def assert_room_invariants(protocol: RoomSessionProtocol):
    for room in protocol.rooms:
        viewers = set(room.viewers)
        assert room.approved_streamers <= viewers
        assert room.streaming_viewers <= room.approved_streamers
        assert room.host_id not in viewers


@pytest.fixture
def check_invariants(protocol):
    def _check():
        assert_room_invariants(protocol)

    return _check

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Set

from constants import DEFAULT_DISPLAY_NAME, MAX_VIEWERS, OUTBOX_LIMIT
from errors import InvalidIdentify, RoomExists, RoomFull, RoomNotFound, SocketIdInUse, TargetUnreachable
from logging_config import get_logger

logger = get_logger(__name__)


class PendingSignal(NamedTuple):
    event: str
    payload: Any


class Connection:
    """One live WebSocket session.

    Outbound frames are queued on `outbox`; the transport's writer task drains
    it, so `send` never blocks the event being processed. A client that stops
    reading until `outbox_limit` frames pile up is cut off: its backlog is
    dropped and the writer is told to stop.
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        display_name: Optional[str] = None,
        outbox_limit: int = OUTBOX_LIMIT,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.durable_id: Optional[str] = None
        self.display_name = display_name or DEFAULT_DISPLAY_NAME
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_limit)
        self.closed = False
        self.overflowed = False

    @property
    def address(self) -> str:
        """Identifier peers should use to reach this connection."""
        return self.durable_id or self.session_id

    def send(self, event: str, data: Any = None):
        if self.closed:
            logger.debug(f"Dropped {event} for closed connection {self.session_id}")
            return
        try:
            self.outbox.put_nowait({"event": event, "data": data if data is not None else {}})
        except asyncio.QueueFull:
            logger.warning(f"Outbox of connection {self.session_id} is full, closing it")
            self.overflowed = True
            self._discard_outbox()
            self.close()

    def close(self):
        if self.closed:
            return
        self.closed = True
        # None tells the writer task to stop
        try:
            self.outbox.put_nowait(None)
        except asyncio.QueueFull:
            self._discard_outbox()
            self.outbox.put_nowait(None)

    def _discard_outbox(self):
        while not self.outbox.empty():
            self.outbox.get_nowait()

    def __repr__(self):
        return f"Connection({self.session_id!r}, durable_id={self.durable_id!r})"


class ConnectionRegistry:
    def __init__(self):
        self._sessions: Dict[str, Connection] = {}
        # durable id -> session id
        self._durable: Dict[str, str] = {}
        # target id (session or durable) -> signals waiting for it
        self._pending: Dict[str, List[PendingSignal]] = {}
        # session ids are never reused, so signals for these can never arrive
        self._released: Set[str] = set()

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, session_id: str):
        return session_id in self._sessions

    def register(self, connection: Connection) -> Connection:
        self._sessions[connection.session_id] = connection
        logger.debug(f"Registered connection {connection.session_id} (live connections: {len(self._sessions)})")
        return connection

    def bind(self, durable_id: str, session_id: str) -> Connection:
        """Bind a durable identifier to a live connection and flush its queue.

        Raises SocketIdInUse when another live connection holds the
        identifier, and InvalidIdentify when the connection is unknown or
        already bound to a different identifier.
        """
        connection = self._sessions.get(session_id)
        if connection is None:
            raise InvalidIdentify(f"Connection {session_id} is not live")

        holder = self._durable.get(durable_id)
        if holder is not None and holder != session_id:
            raise SocketIdInUse(f"Durable id {durable_id} is bound to {holder}", {"durableId": durable_id})
        if durable_id != session_id and (durable_id in self._sessions or durable_id in self._released):
            raise SocketIdInUse(f"Durable id {durable_id} is a session id", {"durableId": durable_id})

        if connection.durable_id is not None and connection.durable_id != durable_id:
            raise InvalidIdentify(
                f"Connection {session_id} is already identified as {connection.durable_id}",
                {"durableId": connection.durable_id},
            )

        connection.durable_id = durable_id
        self._durable[durable_id] = session_id
        logger.info(f"Bound durable id {durable_id} to connection {session_id}")
        self.drain(durable_id)
        return connection

    def resolve(self, target_id: str) -> Optional[Connection]:
        connection = self._sessions.get(target_id)
        if connection is not None:
            return connection
        session_id = self._durable.get(target_id)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def require(self, target_id: str) -> Connection:
        connection = self.resolve(target_id)
        if connection is None:
            raise TargetUnreachable(f"{target_id} is not connected")
        return connection

    def release(self, session_id: str) -> Optional[Connection]:
        """Forget a connection, its durable binding and anything queued for it."""
        connection = self._sessions.pop(session_id, None)
        if connection is None:
            logger.debug(f"Release of unknown connection {session_id} ignored")
            return None
        self._released.add(session_id)

        dropped = len(self._pending.pop(session_id, []))
        if connection.durable_id is not None:
            if self._durable.get(connection.durable_id) == session_id:
                del self._durable[connection.durable_id]
            dropped += len(self._pending.pop(connection.durable_id, []))

        if dropped:
            logger.info(f"Discarded {dropped} undelivered signals for connection {session_id}")
        logger.debug(f"Released connection {session_id} (live connections: {len(self._sessions)})")
        return connection

    def enqueue(self, target_id: str, event: str, payload: Any) -> bool:
        if target_id in self._released:
            logger.warning(f"Dropped {event} for released connection {target_id}")
            return False
        queue = self._pending.setdefault(target_id, [])
        queue.append(PendingSignal(event, payload))
        logger.debug(f"Queued {event} for unreachable target {target_id} ({len(queue)} pending)")
        return True

    def drain(self, target_id: str) -> int:
        connection = self.resolve(target_id)
        if connection is None:
            return 0
        queue = self._pending.pop(target_id, None)
        if not queue:
            return 0
        for signal in queue:
            connection.send(signal.event, signal.payload)
        logger.info(f"Delivered {len(queue)} queued signals to {target_id}")
        return len(queue)

    def pending(self, target_id: str) -> List[PendingSignal]:
        return list(self._pending.get(target_id, []))


@dataclass
class ChatEntry:
    sender_id: str
    text: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return {"senderId": self.sender_id, "text": self.text, "timestamp": self.timestamp}


@dataclass
class Room:
    room_id: str
    host_id: str
    # session id -> joined_at, dict keeps join order for viewerList
    viewers: Dict[str, str] = field(default_factory=dict)
    approved_streamers: Set[str] = field(default_factory=set)
    streaming_viewers: Set[str] = field(default_factory=set)
    revoked: Set[str] = field(default_factory=set)
    is_streaming: bool = False
    messages: List[ChatEntry] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def viewer_count(self) -> int:
        return len(self.viewers)

    @property
    def viewer_list(self) -> List[str]:
        return list(self.viewers)

    @property
    def members(self) -> List[str]:
        return [self.host_id, *self.viewers]

    def approved_ids(self) -> List[str]:
        return [viewer_id for viewer_id in self.viewers if viewer_id in self.approved_streamers]

    def streaming_ids(self) -> List[str]:
        return [viewer_id for viewer_id in self.viewers if viewer_id in self.streaming_viewers]

    def is_viewer(self, session_id: str) -> bool:
        return session_id in self.viewers

    def approve(self, viewer_id: str):
        if viewer_id in self.viewers:
            self.approved_streamers.add(viewer_id)

    def start_viewer_stream(self, viewer_id: str):
        if viewer_id in self.approved_streamers:
            self.streaming_viewers.add(viewer_id)

    def revoke(self, viewer_id: str) -> bool:
        if viewer_id not in self.approved_streamers:
            return False
        self.approved_streamers.discard(viewer_id)
        self.streaming_viewers.discard(viewer_id)
        self.revoked.add(viewer_id)
        return True

    def snapshot(self, host_active: bool) -> dict:
        return {
            "roomId": self.room_id,
            "hostId": self.host_id,
            "viewerCount": self.viewer_count,
            "viewerList": self.viewer_list,
            "isHostActive": host_active,
            "isHostStreaming": self.is_streaming,
            "streamingViewerIds": self.streaming_ids(),
            "approvedViewerIds": self.approved_ids(),
        }


class RoomRegistry:
    def __init__(self, max_viewers: int = MAX_VIEWERS):
        self.max_viewers = max_viewers
        self._rooms: Dict[str, Room] = {}
        # session id -> room id, for host and viewers alike
        self._membership: Dict[str, str] = {}

    def __len__(self):
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def create(self, room_id: str, host_id: str) -> Room:
        if room_id in self._rooms:
            raise RoomExists(f"Room {room_id} already exists", {"roomId": room_id})
        room = Room(room_id=room_id, host_id=host_id)
        self._rooms[room_id] = room
        self._membership[host_id] = room_id
        logger.info(f"Created room {room_id} hosted by {host_id} (active rooms: {len(self._rooms)})")
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def room_of(self, session_id: str) -> Optional[Room]:
        room_id = self._membership.get(session_id)
        if room_id is None:
            return None
        return self._rooms.get(room_id)

    def add_viewer(self, room_id: str, session_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found", {"roomId": room_id})
        self.ensure_capacity(room)
        room.viewers[session_id] = datetime.now().isoformat()
        self._membership[session_id] = room_id
        logger.debug(f"Viewer {session_id} added to room {room_id} ({room.viewer_count}/{self.max_viewers})")
        return room

    def ensure_capacity(self, room: Room):
        if room.viewer_count >= self.max_viewers:
            raise RoomFull(
                f"Room {room.room_id} is full ({room.viewer_count}/{self.max_viewers})", {"roomId": room.room_id}
            )

    def remove_viewer(self, room_id: str, session_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None or session_id not in room.viewers:
            return False
        del room.viewers[session_id]
        room.approved_streamers.discard(session_id)
        room.streaming_viewers.discard(session_id)
        room.revoked.discard(session_id)
        if self._membership.get(session_id) == room_id:
            del self._membership[session_id]
        logger.debug(f"Viewer {session_id} removed from room {room_id} ({room.viewer_count} left)")
        return True

    def destroy(self, room_id: str) -> Optional[Room]:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return None
        for session_id in room.members:
            if self._membership.get(session_id) == room_id:
                del self._membership[session_id]
        logger.info(f"Destroyed room {room_id} (active rooms: {len(self._rooms)})")
        return room

"""Room session protocol.

Every inbound event is handled synchronously from start to finish: handlers
never await, so the registries are only ever mutated by one event at a time
and no partially-applied transition is visible to another connection.
Outbound notifications are queued on the target connections' outboxes.
"""
from functools import partial
from typing import Any, Callable, Dict, Optional

import event_names
from backend import ChatEntry, Connection, ConnectionRegistry, Room, RoomRegistry
from constants import MAX_VIEWERS
from errors import InvalidRoom, RoomExists, RoomNotFound, SignalingError, Unauthorized
from logging_config import get_logger
from relay import SignalingRelay
from schemas.events import VALIDATION_REJECTIONS, UnknownEvent, ValidationError, parse_event

logger = get_logger(__name__)


class RoomSessionProtocol:
    def __init__(self, max_viewers: int = MAX_VIEWERS):
        self.connections = ConnectionRegistry()
        self.rooms = RoomRegistry(max_viewers=max_viewers)
        self.relay = SignalingRelay(self.connections)
        self._handlers: Dict[str, Callable[[Connection, Any], None]] = {
            event_names.IDENTIFY: self.identify,
            event_names.CREATE_ROOM: self.create_room,
            event_names.JOIN_ROOM: self.join_room,
            event_names.HOST_STREAMING: self.host_streaming,
            event_names.STOP_STREAMING: self.stop_streaming,
            event_names.REQUEST_STREAM: self.request_stream,
            event_names.RESPOND_STREAM_REQUEST: self.respond_stream_request,
            event_names.VIEWER_STREAMING: self.viewer_streaming,
            event_names.STOP_VIEWER_STREAM: self.stop_viewer_stream,
            event_names.OFFER: partial(self.signal, event_names.OFFER),
            event_names.ANSWER: partial(self.signal, event_names.ANSWER),
            event_names.ICE_CANDIDATE: self.ice_candidate,
            event_names.CHAT_MESSAGE: self.chat_message,
            event_names.REACTION: self.reaction,
            event_names.LEAVE_ROOM: self.leave_room,
        }

    # -- connection lifecycle ------------------------------------------------

    def connect(self, display_name: Optional[str] = None, session_id: Optional[str] = None) -> Connection:
        connection = self.connections.register(Connection(session_id=session_id, display_name=display_name))
        connection.send(event_names.CONNECTED, {
            "sessionId": connection.session_id,
            "displayName": connection.display_name,
        })
        logger.info(f"Client connected: {connection.session_id} ({connection.display_name})")
        return connection

    def disconnect(self, connection: Connection):
        """Leave the current room, then release the connection record.

        Runs as one step so no room can keep a reference to a released
        session and no queued signal survives its target.
        """
        self._leave(connection)
        self.connections.release(connection.session_id)
        logger.info(f"Client disconnected: {connection.session_id}")

    # -- dispatch ------------------------------------------------------------

    def handle(self, connection: Connection, event: str, data: Any = None):
        try:
            payload = parse_event(event, data)
        except UnknownEvent:
            logger.warning(f"Unknown event {event!r} from {connection.session_id} ignored")
            return
        except ValidationError as e:
            rejection = VALIDATION_REJECTIONS.get(event)
            logger.info(f"Invalid {event} payload from {connection.session_id}: {e.error_count()} errors")
            if rejection:
                connection.send(rejection, {})
            return

        try:
            self._handlers[event](connection, payload)
        except SignalingError as e:
            logger.info(f"Rejected {event} from {connection.session_id}: {e}")
            if e.event:
                connection.send(e.event, {"event": event, **e.details})

    # -- identity --------------------------------------------------------------

    def identify(self, connection: Connection, payload):
        self.connections.bind(payload.durableId, connection.session_id)
        if payload.name:
            connection.display_name = payload.name
        connection.send(event_names.IDENTIFIED, {
            "sessionId": connection.session_id,
            "durableId": connection.durable_id,
            "displayName": connection.display_name,
        })

    # -- room lifecycle --------------------------------------------------------

    def create_room(self, connection: Connection, payload):
        room_id = payload.roomId
        if self.rooms.get(room_id) is not None:
            raise RoomExists(f"Room {room_id} already exists", {"roomId": room_id})

        self._leave(connection)

        room = self.rooms.create(room_id, connection.session_id)
        connection.send(event_names.ROOM_CREATED, {"roomId": room_id})
        self._emit_room_info(room)

    def join_room(self, connection: Connection, payload):
        room_id = payload.roomId
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found", {"roomId": room_id})
        if room.host_id == connection.session_id:
            raise InvalidRoom(f"Host {connection.session_id} cannot join its own room", {"roomId": room_id})

        joined = not room.is_viewer(connection.session_id)
        if joined:
            # a full target keeps the caller in its current room
            self.rooms.ensure_capacity(room)
            self._leave(connection)
            self.rooms.add_viewer(room_id, connection.session_id)

        connection.send(event_names.ROOM_JOINED, {
            "roomId": room.room_id,
            "hostId": room.host_id,
            "isHostStreaming": room.is_streaming,
            "viewerCount": room.viewer_count,
            "viewerList": room.viewer_list,
            "messages": [entry.to_dict() for entry in room.messages],
            "approvedViewerIds": room.approved_ids(),
            "streamingViewerIds": room.streaming_ids(),
        })
        if not joined:
            return

        host = self.connections.resolve(room.host_id)
        if host is not None:
            host.send(event_names.USER_JOINED, {"userId": connection.session_id, "displayName": connection.display_name})

        if room.is_streaming:
            connection.send(event_names.HOST_STARTED_STREAMING, {"hostId": room.host_id})
        for viewer_id in room.streaming_ids():
            connection.send(event_names.VIEWER_STARTED_STREAMING, {"viewerId": viewer_id})

        logger.info(f"Viewer {connection.session_id} joined room {room_id} ({room.viewer_count}/{self.rooms.max_viewers})")
        self._emit_room_info(room)

    def leave_room(self, connection: Connection, payload=None):
        self._leave(connection)

    def _leave(self, connection: Connection):
        room = self.rooms.room_of(connection.session_id)
        if room is None:
            return
        if room.host_id == connection.session_id:
            self._close_room(room)
        else:
            self._remove_viewer(room, connection)

    def _close_room(self, room: Room):
        logger.info(f"Host {room.host_id} left, closing room {room.room_id} with {room.viewer_count} viewers")
        viewers = [self.connections.resolve(viewer_id) for viewer_id in room.viewer_list]
        self.rooms.destroy(room.room_id)
        for viewer in viewers:
            if viewer is None:
                continue
            viewer.send(event_names.HOST_LEFT, {"roomId": room.room_id, "hostId": room.host_id})
            viewer.send(event_names.ROOM_CLOSED, {"roomId": room.room_id})

    def _remove_viewer(self, room: Room, connection: Connection):
        viewer_id = connection.session_id
        was_streamer = viewer_id in room.approved_streamers
        self.rooms.remove_viewer(room.room_id, viewer_id)
        logger.info(f"Viewer {viewer_id} left room {room.room_id}")

        if was_streamer:
            self._broadcast(room, event_names.VIEWER_STOPPED_STREAMING, {"viewerId": viewer_id})
        host = self.connections.resolve(room.host_id)
        if host is not None:
            host.send(event_names.USER_LEFT, {"userId": viewer_id})
        self._emit_room_info(room)

    # -- host streaming --------------------------------------------------------

    def host_streaming(self, connection: Connection, payload):
        room = self._hosted_room(connection, payload.roomId)
        room.is_streaming = True
        logger.info(f"Host {connection.session_id} started streaming in room {room.room_id}")
        self._notify_viewers(room, event_names.HOST_STARTED_STREAMING, {"hostId": room.host_id})
        self._emit_room_info(room)

    def stop_streaming(self, connection: Connection, payload):
        room = self._hosted_room(connection, payload.roomId)
        room.is_streaming = False
        logger.info(f"Host {connection.session_id} stopped streaming in room {room.room_id}")
        self._notify_viewers(room, event_names.HOST_STOPPED_STREAMING, {"hostId": room.host_id})
        self._emit_room_info(room)

    # -- viewer streaming ------------------------------------------------------

    def request_stream(self, connection: Connection, payload=None):
        room = self.rooms.room_of(connection.session_id)
        if room is None or not room.is_viewer(connection.session_id):
            raise Unauthorized(f"{connection.session_id} is not a viewer")
        if connection.session_id in room.revoked:
            raise Unauthorized(f"Stream permission for {connection.session_id} was revoked", {"roomId": room.room_id})

        host = self.connections.resolve(room.host_id)
        if host is None:
            return
        logger.info(f"Stream request from viewer {connection.session_id} in room {room.room_id}")
        host.send(event_names.INCOMING_STREAM_REQUEST, {
            "viewerId": connection.session_id,
            "displayName": connection.display_name,
        })

    def respond_stream_request(self, connection: Connection, payload):
        room = self._own_room(connection)
        viewer_id = self._viewer_session(payload.viewerId)
        if not room.is_viewer(viewer_id) or viewer_id in room.revoked:
            logger.info(f"Stream response for {payload.viewerId} ignored, not an eligible viewer of {room.room_id}")
            return

        viewer = self.connections.resolve(viewer_id)
        logger.info(f"Stream permission for {viewer_id}: {'allowed' if payload.accepted else 'denied'}")
        if not payload.accepted:
            if viewer is not None:
                viewer.send(event_names.STREAM_REQUEST_RESPONSE, {"accepted": False, "roomId": room.room_id})
            return

        room.approve(viewer_id)
        if viewer is not None:
            viewer.send(event_names.STREAM_REQUEST_RESPONSE, {"accepted": True, "roomId": room.room_id})
            self.connections.drain(viewer.session_id)
            if viewer.durable_id:
                self.connections.drain(viewer.durable_id)
        self._emit_room_info(room)

    def viewer_streaming(self, connection: Connection, payload):
        room = self.rooms.get(payload.roomId)
        if room is None:
            raise RoomNotFound(f"Room {payload.roomId} not found", {"roomId": payload.roomId})
        if connection.session_id not in room.approved_streamers:
            raise Unauthorized(f"{connection.session_id} is not approved to stream in {room.room_id}", {"roomId": room.room_id})

        room.start_viewer_stream(connection.session_id)
        logger.info(f"Viewer {connection.session_id} started streaming in room {room.room_id}")
        self._broadcast(room, event_names.VIEWER_STARTED_STREAMING, {"viewerId": connection.session_id})
        self._emit_room_info(room)

    def stop_viewer_stream(self, connection: Connection, payload):
        room = self._own_room(connection)
        viewer_id = self._viewer_session(payload.viewerId)
        if not room.revoke(viewer_id):
            logger.info(f"Stop stream for {payload.viewerId} ignored, not an approved streamer of {room.room_id}")
            return

        logger.info(f"Host {connection.session_id} revoked streaming for {viewer_id} in room {room.room_id}")
        self._broadcast(room, event_names.VIEWER_STOPPED_STREAMING, {"viewerId": viewer_id})
        self._emit_room_info(room)

    # -- signaling -------------------------------------------------------------

    def signal(self, event: str, connection: Connection, payload):
        self.relay.relay(connection, payload.target, event, {"sdp": payload.sdp})

    def ice_candidate(self, connection: Connection, payload):
        message = {"candidate": payload.candidate}
        if payload.target != event_names.BROADCAST_TARGET:
            self.relay.relay(connection, payload.target, event_names.ICE_CANDIDATE, message)
            return

        room = self.rooms.room_of(connection.session_id)
        if room is None:
            logger.debug(f"ICE broadcast from {connection.session_id} dropped, not in a room")
            return
        self.relay.broadcast(connection, room.members, event_names.ICE_CANDIDATE, message)

    # -- chat ------------------------------------------------------------------

    def chat_message(self, connection: Connection, payload):
        room = self._member_room(connection, payload.roomId)
        if room is None:
            return
        entry = ChatEntry(sender_id=connection.session_id, text=payload.message)
        room.messages.append(entry)
        logger.debug(f"Chat message from {connection.session_id} in room {room.room_id}")
        self._broadcast(room, event_names.NEW_MESSAGE, {"roomId": room.room_id, **entry.to_dict()})

    def reaction(self, connection: Connection, payload):
        room = self._member_room(connection, payload.roomId)
        if room is None:
            return
        self._broadcast(room, event_names.REACTION, {
            "roomId": room.room_id,
            "senderId": connection.session_id,
            "type": payload.type,
        })

    # -- helpers ---------------------------------------------------------------

    def room_info(self, room: Room) -> dict:
        return room.snapshot(host_active=self.connections.resolve(room.host_id) is not None)

    def _emit_room_info(self, room: Room):
        if self.rooms.get(room.room_id) is not room:
            return
        self._broadcast(room, event_names.ROOM_INFO, self.room_info(room))

    def _broadcast(self, room: Room, event: str, data: dict):
        for member_id in room.members:
            member = self.connections.resolve(member_id)
            if member is not None:
                member.send(event, data)

    def _notify_viewers(self, room: Room, event: str, data: dict):
        for viewer_id in room.viewer_list:
            viewer = self.connections.resolve(viewer_id)
            if viewer is not None:
                viewer.send(event, data)

    def _hosted_room(self, connection: Connection, room_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found", {"roomId": room_id})
        if room.host_id != connection.session_id:
            raise Unauthorized(f"{connection.session_id} is not the host of {room_id}", {"roomId": room_id})
        return room

    def _own_room(self, connection: Connection) -> Room:
        room = self.rooms.room_of(connection.session_id)
        if room is None or room.host_id != connection.session_id:
            raise Unauthorized(f"{connection.session_id} does not host a room")
        return room

    def _member_room(self, connection: Connection, room_id: str) -> Optional[Room]:
        room = self.rooms.room_of(connection.session_id)
        if room is None or room.room_id != room_id:
            logger.info(f"Message from {connection.session_id} for room {room_id} dropped, not a member")
            return None
        return room

    def _viewer_session(self, viewer_id: str) -> str:
        # hosts may address viewers by durable id
        viewer = self.connections.resolve(viewer_id)
        return viewer.session_id if viewer is not None else viewer_id


session_protocol = RoomSessionProtocol()


def get_session_protocol() -> RoomSessionProtocol:
    return session_protocol

from typing import Optional

import event_names


class SignalingError(Exception):
    """Base for rejections reported back to the originating connection.

    `event` is the outbound event name the client receives and `details` its
    payload. None of these errors affects other participants.
    """

    event: str = ""

    def __init__(self, message: str = "", details: Optional[dict] = None):
        super().__init__(message or self.__class__.__name__)
        self.details = details or {}


class InvalidRoom(SignalingError):
    event = event_names.INVALID_ROOM


class RoomNotFound(InvalidRoom):
    pass


class RoomExists(SignalingError):
    event = event_names.ROOM_EXISTS


class RoomFull(SignalingError):
    event = event_names.ROOM_FULL


class SocketIdInUse(SignalingError):
    event = event_names.SOCKET_ID_IN_USE


class InvalidIdentify(SignalingError):
    event = event_names.INVALID_IDENTIFY


class Unauthorized(SignalingError):
    event = event_names.UNAUTHORIZED


class TargetUnreachable(SignalingError):
    # never sent to clients; the relay queues instead
    event = ""

# Inbound events (client -> server)
IDENTIFY = "identify"
CREATE_ROOM = "create-room"
JOIN_ROOM = "join-room"
HOST_STREAMING = "host-streaming"
STOP_STREAMING = "stop-streaming"
REQUEST_STREAM = "request-stream"
RESPOND_STREAM_REQUEST = "respond-stream-request"
VIEWER_STREAMING = "viewer-streaming"
STOP_VIEWER_STREAM = "stop-viewer-stream"
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
CHAT_MESSAGE = "chat-message"
REACTION = "reaction"
LEAVE_ROOM = "leave-room"

# Outbound events (server -> client)
CONNECTED = "connected"
IDENTIFIED = "identified"
ROOM_CREATED = "room-created"
INVALID_ROOM = "invalid-room"
ROOM_EXISTS = "room-exists"
ROOM_FULL = "room-full"
ROOM_JOINED = "room-joined"
ROOM_INFO = "room-info"
USER_JOINED = "user-joined"
HOST_STARTED_STREAMING = "host-started-streaming"
HOST_STOPPED_STREAMING = "host-stopped-streaming"
VIEWER_STARTED_STREAMING = "viewer-started-streaming"
VIEWER_STOPPED_STREAMING = "viewer-stopped-streaming"
INCOMING_STREAM_REQUEST = "incoming-stream-request"
STREAM_REQUEST_RESPONSE = "stream-request-response"
NEW_MESSAGE = "new-message"
USER_LEFT = "user-left"
HOST_LEFT = "host-left"
ROOM_CLOSED = "room-closed"
SOCKET_ID_IN_USE = "socket-id-in-use"
INVALID_IDENTIFY = "invalid-identify"
UNAUTHORIZED = "unauthorized"

# offer / answer / ice-candidate and reaction are echoed under the same name
SIGNAL_EVENTS = (OFFER, ANSWER, ICE_CANDIDATE)

# ice-candidate target that fans out to every other member of the sender's room
BROADCAST_TARGET = "all"

from fastapi import APIRouter, Depends, HTTPException, Request
from schemas.rooms import RoomCountResponse, RoomDetailsResponse, RoomListResponse, RoomSummary
from session import RoomSessionProtocol, get_session_protocol
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])


@rooms_router.get("/Roomcount", response_model=RoomCountResponse)
async def room_count(protocol: RoomSessionProtocol = Depends(get_session_protocol)):
    return RoomCountResponse(activeRooms=len(protocol.rooms))


@rooms_router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(request: Request, protocol: RoomSessionProtocol = Depends(get_session_protocol)):
    client_host = request.client.host if request.client else 'unknown'
    logger.debug(f"Room list request from {client_host}")
    rooms = [
        RoomSummary(
            roomId=room.room_id,
            viewerCount=room.viewer_count,
            isStreaming=room.is_streaming,
            hostId=room.host_id,
            approvedViewerIds=room.approved_ids(),
        )
        for room in protocol.rooms
    ]
    return RoomListResponse(rooms=rooms)


@rooms_router.get("/rooms/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, protocol: RoomSessionProtocol = Depends(get_session_protocol)):
    """
    Get a single room's membership and streaming state.

    Returns the same fields as the room-info snapshot plus:
    - createdAt: Room creation timestamp
    - maxViewers: Viewer capacity
    - messageCount: Number of chat messages in the room log
    - isFull: Whether the room has reached capacity
    """
    room = protocol.rooms.get(room_id)
    if not room:
        logger.info(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    info = protocol.room_info(room)
    max_viewers = protocol.rooms.max_viewers
    return RoomDetailsResponse(
        createdAt=room.created_at,
        maxViewers=max_viewers,
        messageCount=len(room.messages),
        isFull=room.viewer_count >= max_viewers,
        **info,
    )

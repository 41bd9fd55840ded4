from pydantic import BaseModel


class RoomCountResponse(BaseModel):
    status: str = "ok"
    activeRooms: int

class RoomSummary(BaseModel):
    roomId: str
    viewerCount: int
    isStreaming: bool
    hostId: str
    approvedViewerIds: list[str]

class RoomListResponse(BaseModel):
    status: str = "ok"
    rooms: list[RoomSummary]

class RoomDetailsResponse(BaseModel):
    status: str = "ok"
    roomId: str
    hostId: str
    createdAt: str
    maxViewers: int
    viewerCount: int
    viewerList: list[str]
    isHostActive: bool
    isHostStreaming: bool
    streamingViewerIds: list[str]
    approvedViewerIds: list[str]
    messageCount: int
    isFull: bool

from pydantic import BaseModel

from commute_monitor.schemas.types import UTCDateTime


class NotificationResponse(BaseModel):
    id: int
    route_id: int
    timestamp: UTCDateTime
    type: str
    message: str
    is_read: bool

    class Config:
        from_attributes = True

from pydantic import BaseModel
from typing import Optional

from commute_monitor.schemas.notification import NotificationResponse
from commute_monitor.schemas.route import RouteResponse, RouteHistoryResponse


class CheckResponse(BaseModel):
    route: RouteResponse
    history: RouteHistoryResponse
    notification: Optional[NotificationResponse] = None

    class Config:
        from_attributes = True

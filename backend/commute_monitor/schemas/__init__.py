from commute_monitor.schemas.route import RouteCreate, RouteResponse, RouteUpdate, RouteHistoryResponse
from commute_monitor.schemas.notification import NotificationResponse
from commute_monitor.schemas.settings import SettingsResponse, SettingsUpdate
from commute_monitor.schemas.check import CheckResponse

__all__ = [
    "RouteCreate",
    "RouteResponse",
    "RouteUpdate",
    "RouteHistoryResponse",
    "NotificationResponse",
    "SettingsResponse",
    "SettingsUpdate",
    "CheckResponse",
]

# SQLAlchemy models
from commute_monitor.models.route import Route
from commute_monitor.models.route_history import RouteHistory
from commute_monitor.models.notification import Notification
from commute_monitor.models.monitor_settings import MonitorSettings, NotificationPreference

__all__ = [
    "Route",
    "RouteHistory",
    "Notification",
    "MonitorSettings",
    # Enums
    "NotificationPreference",
]

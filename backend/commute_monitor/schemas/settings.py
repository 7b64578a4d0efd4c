from pydantic import BaseModel, Field
from typing import Optional

from commute_monitor.models.monitor_settings import NotificationPreference


class SettingsUpdate(BaseModel):
    api_key: Optional[str] = None
    enable_notifications: Optional[bool] = None
    notification_type: Optional[NotificationPreference] = None
    history_retention: Optional[int] = Field(default=None, ge=1)


class SettingsResponse(BaseModel):
    api_key: Optional[str] = None  # masked
    api_key_configured: bool
    enable_notifications: bool
    notification_type: NotificationPreference
    history_retention: int

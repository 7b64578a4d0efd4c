import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from commute_monitor.database import Base


class NotificationPreference(str, enum.Enum):
    ALL = "all"
    SIGNIFICANT = "significant"  # |change| >= 5 minutes
    INCREASE = "increase"        # only when travel time goes up


class MonitorSettings(Base):
    """Process-wide monitoring preferences. Always a single row with id=1."""
    __tablename__ = "monitor_settings"

    id = Column(Integer, primary_key=True, default=1)

    api_key = Column(String(200), nullable=True)
    enable_notifications = Column(Boolean, default=True, nullable=False)
    notification_type = Column(String(20), default=NotificationPreference.ALL.value, nullable=False)
    history_retention = Column(Integer, default=30, nullable=False)  # days, advisory

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @classmethod
    def get_or_create(cls, db):
        settings = db.query(cls).filter(cls.id == 1).first()
        if not settings:
            settings = cls(
                id=1,
                enable_notifications=True,
                notification_type=NotificationPreference.ALL.value,
                history_retention=30,
            )
            db.add(settings)
            db.commit()
            db.refresh(settings)
        return settings

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from commute_monitor.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    # Not a foreign key: the log outlives deleted routes
    route_id = Column(Integer, nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    type = Column(String(20), nullable=False)  # new, increase, decrease, unchanged
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)

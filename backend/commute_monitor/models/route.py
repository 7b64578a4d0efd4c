from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from commute_monitor.database import Base


class Route(Base):
    """
    A monitored source -> destination pair with its check cadence.

    The travel-time fields are a denormalised summary of the route's history,
    rewritten on every check cycle:
    - current_time / change: latest measurement and its delta vs. the previous one
    - min_time / max_time: extremes over all measurements
    - avg_time: rounded mean over the full history
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    source = Column(String(500), nullable=False)
    destination = Column(String(500), nullable=False)

    # Minutes between checks, 1-60
    interval = Column(Integer, default=5, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False, index=True)
    is_saved = Column(Boolean, default=False, nullable=False)

    last_checked = Column(DateTime(timezone=True), nullable=True)
    # CURRENT_TIME is an SQL keyword
    current_time = Column("current_travel_time", Integer, nullable=True)
    min_time = Column(Integer, nullable=True)
    max_time = Column(Integer, nullable=True)
    avg_time = Column(Integer, nullable=True)
    change = Column(Integer, nullable=True)  # positive = slower, negative = faster

    # Free-form place details from the client (formatted address, lat/lng)
    source_details = Column(JSON, nullable=True)
    destination_details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    histories = relationship(
        "RouteHistory",
        back_populates="route",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RouteHistory.timestamp",
    )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<Route {self.id}: {self.name} every {self.interval}m ({state})>"

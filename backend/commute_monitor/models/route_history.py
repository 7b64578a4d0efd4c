from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from commute_monitor.database import Base


class RouteHistory(Base):
    """
    One travel-time measurement for a route. Append-only.

    change is the delta vs. the previous entry for the same route, or NULL for
    the first measurement.
    """
    __tablename__ = "route_histories"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    route_id = Column(
        Integer,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    travel_time = Column(Integer, nullable=False)  # minutes
    change = Column(Integer, nullable=True)

    route = relationship("Route", back_populates="histories")

    def __repr__(self) -> str:
        return f"<RouteHistory {self.id}: route {self.route_id} {self.travel_time}m at {self.timestamp}>"

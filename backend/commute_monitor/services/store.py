"""
Persistence operations used by the monitoring core and the HTTP API.

Every write commits immediately so that a check cycle's history, route and
notification writes land one after another; a failure part-way leaves the
earlier writes in place.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from commute_monitor.models import Route, RouteHistory, Notification, MonitorSettings

logger = logging.getLogger(__name__)


class RouteStore:

    def __init__(self, db: Session):
        self.db = db

    # Routes

    def get_routes(self) -> List[Route]:
        return self.db.query(Route).order_by(Route.id).all()

    def get_active_routes(self) -> List[Route]:
        return self.db.query(Route).filter(Route.is_active == True).order_by(Route.id).all()

    def get_saved_routes(self) -> List[Route]:
        return self.db.query(Route).filter(Route.is_saved == True).order_by(Route.id).all()

    def get_route(self, route_id: int) -> Optional[Route]:
        return self.db.query(Route).filter(Route.id == route_id).first()

    def create_route(self, fields: Dict[str, Any]) -> Route:
        route = Route(**fields)
        self.db.add(route)
        self._commit()
        self.db.refresh(route)
        return route

    def update_route(self, route_id: int, updates: Dict[str, Any]) -> Optional[Route]:
        route = self.get_route(route_id)
        if not route:
            return None

        for field, value in updates.items():
            setattr(route, field, value)

        self._commit()
        self.db.refresh(route)
        return route

    def delete_route(self, route_id: int) -> bool:
        route = self.get_route(route_id)
        if not route:
            return False

        self.db.query(RouteHistory).filter(RouteHistory.route_id == route_id).delete(
            synchronize_session=False
        )
        self.db.delete(route)
        self._commit()
        return True

    # Route history

    def get_route_histories(self, route_id: int) -> List[RouteHistory]:
        return (
            self.db.query(RouteHistory)
            .filter(RouteHistory.route_id == route_id)
            .order_by(RouteHistory.timestamp, RouteHistory.id)
            .all()
        )

    def create_route_history(
        self,
        route_id: int,
        travel_time: int,
        change: Optional[int],
        timestamp: Optional[datetime] = None,
    ) -> RouteHistory:
        history = RouteHistory(
            route_id=route_id,
            travel_time=travel_time,
            change=change,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self.db.add(history)
        self._commit()
        self.db.refresh(history)
        return history

    def delete_route_histories(self, route_id: int) -> int:
        deleted = self.db.query(RouteHistory).filter(RouteHistory.route_id == route_id).delete(
            synchronize_session=False
        )
        self._commit()
        return deleted

    # Notifications

    def get_notifications(self, limit: Optional[int] = None) -> List[Notification]:
        query = self.db.query(Notification).order_by(Notification.timestamp.desc(), Notification.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def create_notification(
        self,
        route_id: int,
        type: str,
        message: str,
        timestamp: Optional[datetime] = None,
    ) -> Notification:
        notification = Notification(
            route_id=route_id,
            type=type,
            message=message,
            timestamp=timestamp or datetime.now(timezone.utc),
            is_read=False,
        )
        self.db.add(notification)
        self._commit()
        self.db.refresh(notification)
        return notification

    def mark_notification_read(self, notification_id: int) -> bool:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if not notification:
            return False
        notification.is_read = True
        self._commit()
        return True

    def delete_notifications(self) -> int:
        deleted = self.db.query(Notification).delete(synchronize_session=False)
        self._commit()
        return deleted

    # Settings

    def get_settings(self) -> MonitorSettings:
        return MonitorSettings.get_or_create(self.db)

    def update_settings(self, updates: Dict[str, Any]) -> MonitorSettings:
        settings = self.get_settings()
        for field, value in updates.items():
            setattr(settings, field, value)
        self._commit()
        self.db.refresh(settings)
        return settings

    def _commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

"""
One measurement cycle for a single route.

Coordinates the provider call, aggregation, persistence and notification.
The same entry point serves scheduled ticks and manual "check now" requests.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commute_monitor.models import Route, RouteHistory, Notification
from commute_monitor.services.aggregator import aggregate
from commute_monitor.services.api_keys import resolve_api_key
from commute_monitor.services.notification_policy import decide, build_message
from commute_monitor.services.push import NtfyPublisher
from commute_monitor.services.store import RouteStore
from commute_monitor.services.travel_time import DistanceMatrixClient

logger = logging.getLogger(__name__)


class CheckStatus(str, enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    UNCONFIGURED = "unconfigured"
    PROVIDER_FAILURE = "provider_failure"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass
class CheckResult:
    status: CheckStatus
    route: Optional[Route] = None
    history: Optional[RouteHistory] = None
    notification: Optional[Notification] = None
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == CheckStatus.OK


class RouteLocks:
    """At most one check per route id at a time; other routes never wait."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, route_id: int) -> asyncio.Lock:
        lock = self._locks.get(route_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[route_id] = lock
        return lock

    def discard(self, route_id: int):
        lock = self._locks.get(route_id)
        if lock is not None and not lock.locked():
            del self._locks[route_id]


class RouteChecker:
    """
    Runs a check cycle:
    1. Look up the route
    2. Resolve the provider API key
    3. Fetch the current travel time
    4. Aggregate min/max/avg/change
    5. Write history, then route summary, then notification (if the policy says so)
    """

    def __init__(
        self,
        db: Session,
        provider: Optional[DistanceMatrixClient] = None,
        publisher: Optional[NtfyPublisher] = None,
        locks: Optional[RouteLocks] = None,
    ):
        self.db = db
        self.store = RouteStore(db)
        self.provider = provider or DistanceMatrixClient()
        self.publisher = publisher or NtfyPublisher()
        self.locks = locks or RouteLocks()

    async def check_route(self, route_id: int) -> CheckResult:
        lock = self.locks.get(route_id)
        if lock.locked():
            logger.info(f"Check already running for route {route_id}, waiting for it to finish")

        async with lock:
            try:
                return await self._check_route(route_id)
            except Exception as e:
                logger.exception(f"Unexpected error checking route {route_id}")
                self.db.rollback()
                return CheckResult(
                    status=CheckStatus.PERSISTENCE_FAILURE,
                    error_message=f"Unexpected error: {e}",
                )

    async def _check_route(self, route_id: int) -> CheckResult:
        route = self.store.get_route(route_id)
        if not route:
            return CheckResult(
                status=CheckStatus.NOT_FOUND,
                error_message=f"Route {route_id} not found",
            )

        api_key = resolve_api_key(self.db)
        if not api_key:
            logger.error(f"Cannot check route {route_id}: API key not configured")
            return CheckResult(
                status=CheckStatus.UNCONFIGURED,
                error_message="API key not configured",
            )

        try:
            measurement = await self.provider.fetch_travel_time(route.source, route.destination, api_key)
        except Exception as e:
            logger.error(f"Provider exception for route {route_id}: {e}")
            measurement = None

        if measurement is None:
            logger.error(f"Failed to get travel time for route {route_id} ({route.name})")
            return CheckResult(
                status=CheckStatus.PROVIDER_FAILURE,
                route=route,
                error_message="Travel time provider returned no usable data",
            )

        travel_time = measurement.duration_minutes
        prior_times = [h.travel_time for h in self.store.get_route_histories(route_id)]
        stats = aggregate(route, travel_time, prior_times + [travel_time])

        # Captured before the route row is rewritten below
        route_name = route.name
        now = datetime.now(timezone.utc)

        try:
            history = self.store.create_route_history(
                route_id=route_id,
                travel_time=travel_time,
                change=stats.change,
                timestamp=now,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            if self.store.get_route(route_id) is None:
                return self._deleted_during_check(route_id)
            return self._persistence_failure(route_id, "history insert", e)

        try:
            route = self.store.update_route(route_id, {
                "current_time": travel_time,
                "min_time": stats.min_time,
                "max_time": stats.max_time,
                "avg_time": stats.avg_time,
                "change": stats.change,
                "last_checked": now,
            })
        except SQLAlchemyError as e:
            return self._persistence_failure(route_id, "route update", e, history=history)

        if route is None:
            # Deleted between lookup and update; history went with it
            return self._deleted_during_check(route_id)

        notification = None
        settings = self.store.get_settings()
        decision = decide(stats.change, settings)

        if decision.should_emit:
            try:
                notification = self.store.create_notification(
                    route_id=route_id,
                    type=decision.type,
                    message=build_message(route_name, travel_time, decision.type, stats.change),
                    timestamp=now,
                )
            except SQLAlchemyError as e:
                return self._persistence_failure(
                    route_id, "notification insert", e, route=route, history=history
                )

            try:
                await self.publisher.publish(notification, route_name)
            except Exception as e:
                logger.error(f"Push delivery failed for notification {notification.id}: {e}")
        else:
            logger.debug(f"Notification suppressed for route {route_id} ({decision.type}, change={stats.change})")

        change_str = "first check" if stats.change is None else f"{stats.change:+d} min"
        logger.info(f"Route {route_id} ({route_name}): {travel_time} min, {change_str}")

        return CheckResult(
            status=CheckStatus.OK,
            route=route,
            history=history,
            notification=notification,
        )

    def _deleted_during_check(self, route_id: int) -> CheckResult:
        logger.info(f"Route {route_id} was deleted while its check was running, discarding measurement")
        return CheckResult(
            status=CheckStatus.NOT_FOUND,
            error_message=f"Route {route_id} was deleted during the check",
        )

    def _persistence_failure(self, route_id: int, step: str, error: Exception, **partial) -> CheckResult:
        logger.error(f"Persistence failure for route {route_id} during {step}: {error}")
        self.db.rollback()
        return CheckResult(
            status=CheckStatus.PERSISTENCE_FAILURE,
            error_message=f"Failed during {step}: {error}",
            **partial,
        )

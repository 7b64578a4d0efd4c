"""
Per-route APScheduler jobs.

Every active route gets exactly one cron job, keyed by route id, firing at
every n-th minute boundary for an interval of n minutes. Inactive or deleted
routes have no job. The RouteScheduler is built once in the application
lifespan and owns the route id -> job mapping.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import Request
from sqlalchemy.orm import Session

from commute_monitor.config import get_settings
from commute_monitor.database import SessionLocal
from commute_monitor.services.push import NtfyPublisher
from commute_monitor.services.route_checker import CheckResult, CheckStatus, RouteChecker, RouteLocks
from commute_monitor.services.store import RouteStore
from commute_monitor.services.travel_time import DistanceMatrixClient

logger = logging.getLogger(__name__)

settings = get_settings()

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 60
SHUTDOWN_GRACE_SECONDS = 5


def job_id(route_id: int) -> str:
    return f"route-{route_id}"


def build_trigger(interval: int, timezone: Optional[str] = None) -> CronTrigger:
    """
    Cron trigger for "every `interval` minutes" aligned to the clock.

    60 becomes minute=0: APScheduler rejects a step as large as the minute range.
    """
    if not MIN_INTERVAL_MINUTES <= interval <= MAX_INTERVAL_MINUTES:
        raise ValueError(f"Interval must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes, got {interval}")

    minute = "0" if interval == MAX_INTERVAL_MINUTES else f"*/{interval}"
    return CronTrigger(minute=minute, timezone=timezone or settings.scheduler_timezone)


@dataclass
class ScheduledRoute:
    job: Job
    interval: int


class RouteScheduler:

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        provider: Optional[DistanceMatrixClient] = None,
        publisher: Optional[NtfyPublisher] = None,
        timezone: Optional[str] = None,
    ):
        self.timezone = timezone or settings.scheduler_timezone
        self._session_factory = session_factory
        self._scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            timezone=self.timezone,
        )
        self._jobs: Dict[int, ScheduledRoute] = {}
        # Serialises cancel-then-add per route id
        self._lock = threading.RLock()

        self.provider = provider or DistanceMatrixClient()
        self.publisher = publisher or NtfyPublisher()
        self.locks = RouteLocks()
        # Scheduled checks currently running; shutdown waits for them
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self):
        """Start APScheduler and restore a job for every active route."""
        if self._scheduler.running:
            logger.warning("Route scheduler already running")
            return

        self._scheduler.start()
        logger.info(f"Route scheduler started (timezone: {self.timezone})")

        db = self._session_factory()
        try:
            active_routes = RouteStore(db).get_active_routes()
            for route in active_routes:
                self.schedule(route.id, db)
            logger.info(f"Restored monitoring for {len(active_routes)} active route(s)")
        finally:
            db.close()

    async def shutdown(self):
        """Cancel every job, stop APScheduler and close HTTP clients. Safe to call twice."""
        with self._lock:
            for route_id in list(self._jobs):
                self._cancel(route_id)

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Route scheduler stopped")

        # Checks already dispatched still need the HTTP clients
        if self._in_flight:
            logger.info(f"Waiting for {len(self._in_flight)} in-flight check(s) to finish")
            _, pending = await asyncio.wait(
                set(self._in_flight),
                timeout=settings.provider_timeout_seconds + SHUTDOWN_GRACE_SECONDS,
            )
            if pending:
                logger.warning(f"{len(pending)} check(s) still running at shutdown, closing clients anyway")

        await self.provider.close()
        await self.publisher.close()

    def schedule(self, route_id: int, db: Optional[Session] = None) -> Optional[Job]:
        """
        (Re)install the job for a route.

        Any existing job is cancelled first. A new one is only added if the
        route exists and is active.
        """
        with self._lock:
            self._cancel(route_id)

            route = self._load_route(route_id, db)
            if route is None:
                logger.info(f"Route {route_id} not found, nothing to schedule")
                return None
            if not route.is_active:
                logger.debug(f"Route {route_id} is inactive, not scheduling")
                return None

            job = self._scheduler.add_job(
                self.run_scheduled_check,
                trigger=build_trigger(route.interval, self.timezone),
                args=[route_id],
                id=job_id(route_id),
                name=f"Route {route_id}: {route.name}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=30,
            )
            self._jobs[route_id] = ScheduledRoute(job=job, interval=route.interval)

        logger.info(f"Scheduled monitoring for route {route_id} every {route.interval} minutes")
        return job

    def unschedule(self, route_id: int) -> bool:
        with self._lock:
            removed = self._cancel(route_id)

        if removed:
            logger.info(f"Stopped monitoring route {route_id}")
        return removed

    def _cancel(self, route_id: int) -> bool:
        had_entry = self._jobs.pop(route_id, None) is not None
        try:
            self._scheduler.remove_job(job_id(route_id))
        except JobLookupError:
            return had_entry
        return True

    def _load_route(self, route_id: int, db: Optional[Session]):
        if db is not None:
            return RouteStore(db).get_route(route_id)

        own_db = self._session_factory()
        try:
            return RouteStore(own_db).get_route(route_id)
        finally:
            own_db.close()

    def get_job(self, route_id: int) -> Optional[Job]:
        entry = self._jobs.get(route_id)
        return entry.job if entry else None

    def scheduled_route_ids(self) -> List[int]:
        return sorted(self._jobs)

    # Route lifecycle hooks, called after the change is committed

    async def route_created(self, route_id: int, db: Session) -> CheckResult:
        """Schedule a new route if active and take its first measurement right away."""
        self.schedule(route_id, db)
        return await self.check_now(route_id, db)

    def route_activated(self, route_id: int, db: Optional[Session] = None):
        self.schedule(route_id, db)

    def route_deactivated(self, route_id: int):
        self.unschedule(route_id)

    def interval_changed(self, route_id: int, db: Optional[Session] = None):
        route = self._load_route(route_id, db)
        if route is not None and route.is_active:
            # Full restart at the new cadence, no immediate measurement
            self.unschedule(route_id)
            self.schedule(route_id, db)

    def route_updated(self, route_id: int, changes: dict, db: Session):
        """Dispatch a committed PATCH to the matching transition hooks."""
        if "is_active" in changes:
            if changes["is_active"]:
                self.route_activated(route_id, db)
            else:
                self.route_deactivated(route_id)

        if "interval" in changes:
            self.interval_changed(route_id, db)

    def route_deleted(self, route_id: int):
        """Call before the route's data is removed."""
        self.unschedule(route_id)
        self.locks.discard(route_id)

    # Checks

    async def check_now(self, route_id: int, db: Optional[Session] = None) -> CheckResult:
        if db is not None:
            checker = RouteChecker(db, provider=self.provider, publisher=self.publisher, locks=self.locks)
            return await checker.check_route(route_id)

        own_db = self._session_factory()
        try:
            checker = RouteChecker(own_db, provider=self.provider, publisher=self.publisher, locks=self.locks)
            return await checker.check_route(route_id)
        finally:
            own_db.close()

    async def run_scheduled_check(self, route_id: int):
        """Job callback. Never raises, so one bad route can't stop the others."""
        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            result = await self.check_now(route_id)
        except Exception as e:
            logger.error(f"❌ Exception in scheduled check for route {route_id}: {e}")
            return
        finally:
            self._in_flight.discard(task)

        if result.is_success:
            logger.debug(f"✅ Scheduled check for route {route_id} complete")
        elif result.status == CheckStatus.NOT_FOUND:
            logger.info(f"Route {route_id} no longer exists, skipping scheduled check")
        else:
            logger.warning(f"❌ Scheduled check for route {route_id} failed: {result.status.value} - {result.error_message}")

    def status(self) -> dict:
        """Scheduler state for the status endpoint."""
        jobs = []
        next_run = None

        for route_id, entry in sorted(self._jobs.items()):
            job_next = getattr(entry.job, "next_run_time", None)
            jobs.append({
                "route_id": route_id,
                "id": entry.job.id,
                "name": entry.job.name,
                "interval": entry.interval,
                "next_run": job_next.isoformat() if job_next else None,
            })
            if job_next and (next_run is None or job_next < next_run):
                next_run = job_next

        return {
            "running": self.running,
            "timezone": self.timezone,
            "jobs": jobs,
            "next_run": next_run.isoformat() if next_run else None,
        }


def get_route_scheduler(request: Request) -> RouteScheduler:
    """FastAPI dependency: the scheduler built in the application lifespan."""
    return request.app.state.route_scheduler

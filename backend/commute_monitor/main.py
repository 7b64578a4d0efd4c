from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from commute_monitor.api import routes, health, notifications
from commute_monitor.api import settings as settings_api
from commute_monitor.config import get_settings
from commute_monitor.database import engine, Base, SessionLocal, ensure_sqlite_columns
from commute_monitor.models import Route, RouteHistory, Notification, MonitorSettings  # noqa: F401 - registers tables
from commute_monitor.scheduler import RouteScheduler
from commute_monitor.services.api_keys import resolve_api_key

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting Commute Monitor")

    if settings.database_url.startswith("sqlite"):
        logger.info("SQLite detected - creating tables if needed")
        Base.metadata.create_all(bind=engine)
        ensure_sqlite_columns()

    db = SessionLocal()
    try:
        if resolve_api_key(db):
            logger.info("✅ Travel time API key configured")
        else:
            logger.warning("⚠️ No travel time API key configured - checks will fail until one is set")
    finally:
        db.close()

    route_scheduler = RouteScheduler()
    app.state.route_scheduler = route_scheduler

    if settings.scheduler_enabled:
        route_scheduler.start()
        logger.info("✅ Route scheduler started")
    else:
        logger.info("Scheduler disabled by configuration")

    yield

    logger.info("🛑 Shutting down Commute Monitor")
    await route_scheduler.shutdown()
    logger.info("✅ Route scheduler stopped")


app = FastAPI(
    title="Commute Monitor",
    description="Self-hosted travel time monitor for recurring routes",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(routes.router, prefix="/api/routes", tags=["routes"])
app.include_router(notifications.router, prefix="/api", tags=["notifications"])
app.include_router(settings_api.router, prefix="/api", tags=["settings"])


@app.get("/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"status": "ok"}

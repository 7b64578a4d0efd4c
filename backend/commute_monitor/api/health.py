from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text

from commute_monitor.database import get_db
from commute_monitor.scheduler import RouteScheduler, get_route_scheduler
from commute_monitor.services.api_keys import resolve_api_key
from commute_monitor.services.store import RouteStore

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"

    return {
        "status": "ok" if db_status == "healthy" else "degraded",
        "database": db_status
    }


@router.get("/api/init")
async def init_monitoring(
    db: Session = Depends(get_db),
    route_scheduler: RouteScheduler = Depends(get_route_scheduler),
):
    """
    Called by the client on load: resolves the API key (persisting an
    environment override) and makes sure every active route has a job.
    """
    api_key = resolve_api_key(db)
    active_routes = RouteStore(db).get_active_routes()

    for route in active_routes:
        route_scheduler.schedule(route.id, db)

    return {
        "api_key_configured": bool(api_key),
        "active_routes_count": len(active_routes),
    }


@router.get("/api/scheduler/status")
async def scheduler_status(route_scheduler: RouteScheduler = Depends(get_route_scheduler)):
    return route_scheduler.status()

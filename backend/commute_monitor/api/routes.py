import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from typing import List

from commute_monitor.database import get_db
from commute_monitor.scheduler import RouteScheduler, get_route_scheduler
from commute_monitor.schemas import (
    CheckResponse,
    RouteCreate,
    RouteHistoryResponse,
    RouteResponse,
    RouteUpdate,
)
from commute_monitor.services.api_keys import resolve_api_key
from commute_monitor.services.route_checker import CheckStatus
from commute_monitor.services.store import RouteStore

logger = logging.getLogger(__name__)

router = APIRouter()

CHECK_FAILURE_CODES = {
    CheckStatus.NOT_FOUND: 404,
    CheckStatus.UNCONFIGURED: 400,
    CheckStatus.PROVIDER_FAILURE: 502,
    CheckStatus.PERSISTENCE_FAILURE: 500,
}

# Fields a client may explicitly clear with null
NULLABLE_ROUTE_FIELDS = {"source_details", "destination_details"}


def _get_route_or_404(store: RouteStore, route_id: int):
    route = store.get_route(route_id)
    if not route:
        raise HTTPException(status_code=404, detail="Route not found")
    return route


@router.get("", response_model=List[RouteResponse])
async def list_routes(db: Session = Depends(get_db)):
    return RouteStore(db).get_routes()


@router.get("/active", response_model=List[RouteResponse])
async def list_active_routes(db: Session = Depends(get_db)):
    return RouteStore(db).get_active_routes()


@router.get("/saved", response_model=List[RouteResponse])
async def list_saved_routes(db: Session = Depends(get_db)):
    return RouteStore(db).get_saved_routes()


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(route_id: int, db: Session = Depends(get_db)):
    return _get_route_or_404(RouteStore(db), route_id)


@router.post("", response_model=RouteResponse, status_code=201)
async def create_route(
    route: RouteCreate,
    db: Session = Depends(get_db),
    route_scheduler: RouteScheduler = Depends(get_route_scheduler),
):
    if not resolve_api_key(db):
        raise HTTPException(status_code=400, detail="API key not configured")

    store = RouteStore(db)
    db_route = store.create_route(route.model_dump())
    logger.info(f"Created route {db_route.id}: {db_route.name}")

    result = await route_scheduler.route_created(db_route.id, db)
    if not result.is_success:
        # The route exists either way; the next tick or a manual check retries
        logger.warning(f"Initial check for route {db_route.id} failed: {result.status.value}")

    db.refresh(db_route)
    return db_route


@router.patch("/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: int,
    route_update: RouteUpdate,
    db: Session = Depends(get_db),
    route_scheduler: RouteScheduler = Depends(get_route_scheduler),
):
    store = RouteStore(db)
    _get_route_or_404(store, route_id)

    changes = {
        field: value
        for field, value in route_update.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_ROUTE_FIELDS
    }
    route = store.update_route(route_id, changes)
    route_scheduler.route_updated(route_id, changes, db)
    return route


@router.delete("/{route_id}", status_code=204)
async def delete_route(
    route_id: int,
    db: Session = Depends(get_db),
    route_scheduler: RouteScheduler = Depends(get_route_scheduler),
):
    route_scheduler.route_deleted(route_id)

    if not RouteStore(db).delete_route(route_id):
        raise HTTPException(status_code=404, detail="Route not found")

    logger.info(f"Deleted route {route_id}")
    return Response(status_code=204)


@router.get("/{route_id}/history", response_model=List[RouteHistoryResponse])
async def get_route_history(route_id: int, db: Session = Depends(get_db)):
    return RouteStore(db).get_route_histories(route_id)


@router.post("/{route_id}/check", response_model=CheckResponse)
async def check_route(
    route_id: int,
    db: Session = Depends(get_db),
    route_scheduler: RouteScheduler = Depends(get_route_scheduler),
):
    """Measure a route now, outside its schedule."""
    result = await route_scheduler.check_now(route_id, db)

    if not result.is_success:
        raise HTTPException(
            status_code=CHECK_FAILURE_CODES.get(result.status, 500),
            detail={"status": result.status.value, "message": result.error_message},
        )

    return CheckResponse(
        route=result.route,
        history=result.history,
        notification=result.notification,
    )

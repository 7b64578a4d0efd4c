from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from commute_monitor.database import get_db
from commute_monitor.schemas import SettingsResponse, SettingsUpdate
from commute_monitor.services.api_keys import resolve_api_key
from commute_monitor.services.store import RouteStore

router = APIRouter()


def mask_api_key(key: str | None) -> str | None:
    """Mask API key for display, showing only last 4 chars."""
    if not key or len(key) < 8:
        return None
    return f"{'*' * (len(key) - 4)}{key[-4:]}"


def _to_response(settings, api_key: str | None) -> SettingsResponse:
    return SettingsResponse(
        api_key=mask_api_key(api_key),
        api_key_configured=bool(api_key),
        enable_notifications=settings.enable_notifications,
        notification_type=settings.notification_type,
        history_retention=settings.history_retention,
    )


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(db: Session = Depends(get_db)):
    api_key = resolve_api_key(db)
    return _to_response(RouteStore(db).get_settings(), api_key)


@router.patch("/settings", response_model=SettingsResponse)
async def update_settings(updates: SettingsUpdate, db: Session = Depends(get_db)):
    changes = updates.model_dump(exclude_unset=True)
    if "notification_type" in changes and changes["notification_type"] is not None:
        changes["notification_type"] = changes["notification_type"].value
    if "api_key" in changes and changes["api_key"] is not None:
        changes["api_key"] = changes["api_key"].strip() or None

    store = RouteStore(db)
    store.update_settings(changes)

    # An environment key still wins over whatever was just stored
    api_key = resolve_api_key(db)
    return _to_response(store.get_settings(), api_key)

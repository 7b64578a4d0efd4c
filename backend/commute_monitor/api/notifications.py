from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from typing import Dict, List, Optional

from commute_monitor.database import get_db
from commute_monitor.schemas import NotificationResponse
from commute_monitor.services.store import RouteStore

router = APIRouter()


@router.get("/notifications", response_model=List[NotificationResponse])
async def get_notifications(limit: Optional[int] = None, db: Session = Depends(get_db)):
    """Notification log, newest first."""
    return RouteStore(db).get_notifications(limit=limit)


@router.patch("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: int, db: Session = Depends(get_db)) -> Dict:
    if not RouteStore(db).mark_notification_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"status": "read", "id": notification_id}


@router.delete("/notifications", status_code=204)
async def clear_notifications(db: Session = Depends(get_db)):
    RouteStore(db).delete_notifications()
    return Response(status_code=204)

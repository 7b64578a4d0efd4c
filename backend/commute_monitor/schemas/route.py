from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from commute_monitor.schemas.types import UTCDateTime


class RouteBase(BaseModel):
    name: str = Field(min_length=1)
    source: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    interval: int = Field(default=5, ge=1, le=60)
    is_active: bool = False
    is_saved: bool = False
    source_details: Optional[Dict[str, Any]] = None
    destination_details: Optional[Dict[str, Any]] = None


class RouteCreate(RouteBase):
    pass


class RouteUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    source: Optional[str] = Field(default=None, min_length=1)
    destination: Optional[str] = Field(default=None, min_length=1)
    interval: Optional[int] = Field(default=None, ge=1, le=60)
    is_active: Optional[bool] = None
    is_saved: Optional[bool] = None
    source_details: Optional[Dict[str, Any]] = None
    destination_details: Optional[Dict[str, Any]] = None


class RouteResponse(RouteBase):
    id: int
    last_checked: Optional[UTCDateTime] = None
    current_time: Optional[int] = None
    min_time: Optional[int] = None
    max_time: Optional[int] = None
    avg_time: Optional[int] = None
    change: Optional[int] = None

    class Config:
        from_attributes = True


class RouteHistoryResponse(BaseModel):
    id: int
    route_id: int
    timestamp: UTCDateTime
    travel_time: int
    change: Optional[int] = None

    class Config:
        from_attributes = True

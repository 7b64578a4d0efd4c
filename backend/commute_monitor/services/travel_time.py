"""
Google Distance Matrix client.

Returns the current driving time (traffic-aware when the API provides it) for a
single origin/destination pair. Any failure - transport error, non-2xx status,
non-OK API status, missing fields - yields None rather than raising, so callers
only have to handle one failure shape.
"""
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from commute_monitor.config import get_settings
from commute_monitor.services.aggregator import round_half_away_from_zero

logger = logging.getLogger(__name__)
settings = get_settings()


class _TextValue(BaseModel):
    value: float
    text: str


class _Element(BaseModel):
    status: str
    duration: Optional[_TextValue] = None
    duration_in_traffic: Optional[_TextValue] = None
    distance: Optional[_TextValue] = None


class _Row(BaseModel):
    elements: List[_Element]


class DistanceMatrixResponse(BaseModel):
    status: str
    rows: List[_Row]


@dataclass
class TravelTimeResult:
    duration_minutes: int
    duration_text: str
    distance_text: str


class DistanceMatrixClient:

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url or settings.distance_matrix_url
        self.timeout = timeout or settings.provider_timeout_seconds
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch_travel_time(
        self,
        source: str,
        destination: str,
        api_key: str,
    ) -> Optional[TravelTimeResult]:
        params = {
            "origins": source,
            "destinations": destination,
            "mode": "driving",
            "traffic_model": "best_guess",
            "departure_time": str(int(time.time())),
            "key": api_key,
        }

        try:
            client = await self._get_client()
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = DistanceMatrixResponse.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.warning(f"Distance Matrix request failed for {source} -> {destination}: {e}")
            return None
        except (ValidationError, ValueError) as e:
            logger.error(f"Malformed Distance Matrix response for {source} -> {destination}: {e}")
            return None

        return self.parse_response(payload)

    @staticmethod
    def parse_response(payload: DistanceMatrixResponse) -> Optional[TravelTimeResult]:
        if (
            payload.status != "OK"
            or not payload.rows
            or not payload.rows[0].elements
            or payload.rows[0].elements[0].status != "OK"
        ):
            element_status = None
            if payload.rows and payload.rows[0].elements:
                element_status = payload.rows[0].elements[0].status
            logger.error(
                f"Distance Matrix returned status={payload.status} element_status={element_status}"
            )
            return None

        element = payload.rows[0].elements[0]
        if element.distance is None:
            logger.error("Distance Matrix element missing distance")
            return None

        duration = element.duration_in_traffic or element.duration
        if duration is None:
            logger.error("Distance Matrix element missing duration")
            return None

        return TravelTimeResult(
            duration_minutes=round_half_away_from_zero(Decimal(str(duration.value)) / 60),
            duration_text=duration.text,
            distance_text=element.distance.text,
        )

import logging
from typing import Optional

import httpx

from commute_monitor.config import get_settings
from commute_monitor.services.notification_policy import TYPE_INCREASE, TYPE_NEW

settings = get_settings()
logger = logging.getLogger(__name__)


class NtfyPublisher:
    """
    Pushes emitted travel-time notifications to an ntfy topic.

    Delivery is best effort: the notification is already stored by the time
    publish() runs, so failures are logged and reported as False only.
    """

    # ntfy priorities (1=min, 5=max)
    PRIORITY_MAP = {
        TYPE_INCREASE: "4",
        TYPE_NEW: "2",
    }
    DEFAULT_PRIORITY = "3"

    TAG_MAP = {
        TYPE_INCREASE: ["car", "warning"],
        TYPE_NEW: ["car", "new"],
    }

    def __init__(
        self,
        ntfy_url: Optional[str] = None,
        ntfy_topic: Optional[str] = None,
    ):
        self.ntfy_url = (ntfy_url if ntfy_url is not None else settings.ntfy_url).rstrip("/")
        self.ntfy_topic = ntfy_topic or settings.ntfy_topic
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(self.ntfy_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def publish(self, notification, route_name: str) -> bool:
        if not self.enabled:
            return False

        headers = {
            "Title": f"Commute update: {route_name}".encode("utf-8"),
            "Priority": self.PRIORITY_MAP.get(notification.type, self.DEFAULT_PRIORITY),
            "Tags": ",".join(self.TAG_MAP.get(notification.type, ["car"])),
        }

        try:
            client = await self._get_client()
            response = await client.post(
                f"{self.ntfy_url}/{self.ntfy_topic}",
                content=notification.message.encode("utf-8"),
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Could not reach ntfy server at {self.ntfy_url}: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"ntfy returned {response.status_code}: {response.text}")
            return False

        logger.info(f"Pushed notification {notification.id} for route {notification.route_id}")
        return True

"""
Travel-time provider API key resolution.

Keys are resolved in order:
1. GOOGLE_MAPS_API_KEY environment setting (deployment-configured via .env)
2. MonitorSettings database row (user-configured via the API)

An environment key always wins and is written back into the settings row, so
anything reading the stored key afterwards sees the same value the checker uses.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from commute_monitor.config import get_settings
from commute_monitor.models.monitor_settings import MonitorSettings

logger = logging.getLogger(__name__)


def _clean(value) -> Optional[str]:
    if value and isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_api_key(db: Session) -> Optional[str]:
    """
    Resolve the active provider key.

    Args:
        db: Database session used to read (and possibly update) MonitorSettings

    Returns:
        The API key string, or None if not configured anywhere.
    """
    env_key = _clean(get_settings().google_maps_api_key)
    stored = MonitorSettings.get_or_create(db)

    if env_key:
        if stored.api_key != env_key:
            logger.info("Environment API key overrides stored key; persisting it to settings")
            stored.api_key = env_key
            db.commit()
        return env_key

    return _clean(stored.api_key)

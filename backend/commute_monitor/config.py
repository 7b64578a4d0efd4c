import os
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    env: str = "dev"
    database_url: str = "sqlite:///./data/commute_monitor.db"
    log_level: str = "INFO"

    scheduler_enabled: bool = True
    scheduler_timezone: str = os.environ.get("TZ", "UTC")

    # Out-of-band key: when set it always wins over the stored one
    google_maps_api_key: str = ""
    distance_matrix_url: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    provider_timeout_seconds: float = 10.0

    # Empty ntfy_url disables push delivery
    ntfy_url: str = ""
    ntfy_topic: str = "commute-monitor"

    def model_post_init(self, __context):
        if self.env == "prod" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "Production requires explicit DATABASE_URL (not SQLite)"
            )

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Eventbrite Configuration
    eventbrite_token: str = Field(default="", alias="EVENTBRITE_TOKEN")
    eventbrite_organization_id: str = Field(
        default="", alias="EVENTBRITE_ORGANIZATION_ID"
    )
    eventbrite_base_url: str = Field(
        default="https://www.eventbriteapi.com/v3", alias="EVENTBRITE_BASE_URL"
    )

    # Cache Configuration
    cache_ttl_seconds: int = Field(default=300, alias="CACHE_TTL_SECONDS")
    cache_sweep_interval_seconds: int = Field(
        default=600, alias="CACHE_SWEEP_INTERVAL_SECONDS"
    )
    single_flight: bool = Field(default=True, alias="SINGLE_FLIGHT")

    # Primary event query
    events_max_retries: int = Field(default=3, alias="EVENTS_MAX_RETRIES")
    events_initial_delay: float = Field(default=1.0, alias="EVENTS_INITIAL_DELAY")
    events_timeout: float = Field(default=20.0, alias="EVENTS_TIMEOUT")
    events_max_pages: int = Field(default=5, alias="EVENTS_MAX_PAGES")

    # Per-event ticket enrichment
    tickets_max_retries: int = Field(default=2, alias="TICKETS_MAX_RETRIES")
    tickets_initial_delay: float = Field(default=0.5, alias="TICKETS_INITIAL_DELAY")
    tickets_timeout: float = Field(default=10.0, alias="TICKETS_TIMEOUT")
    enrichment_concurrency: int = Field(default=10, alias="ENRICHMENT_CONCURRENCY")
    default_currency: str = Field(default="MXN", alias="DEFAULT_CURRENCY")

    # HTTP server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=5000, alias="PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    shutdown_timeout_seconds: float = Field(default=15.0, alias="SHUTDOWN_TIMEOUT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="DEBUG")

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def load_settings() -> Settings:
    """Build settings from the process environment (after .env is loaded)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()

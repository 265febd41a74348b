"""
Configuration module - loads settings from .env file
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telegram
    telegram_bot_token: str = Field(..., env="TELEGRAM_BOT_TOKEN")

    # Backend (restaurant store, order store, payment gateway)
    backend_base_url: str = Field(default="http://localhost:3000", env="BACKEND_BASE_URL")
    backend_api_token: str = Field(default="", env="BACKEND_API_TOKEN")  # Opaque bearer, empty = anonymous
    request_timeout_seconds: int = Field(default=20, env="REQUEST_TIMEOUT_SECONDS")
    backend_requests_per_second: float = Field(default=10.0, env="BACKEND_REQUESTS_PER_SECOND")

    # Durable client storage (reference point, cart)
    storage_db_path: str = Field(default=".data/client_storage.db", env="STORAGE_DB_PATH")

    # Discovery
    default_radius_km: str = Field(default="all", env="DEFAULT_RADIUS_KM")  # "all" or km bound
    popular_min_rating: float = Field(default=4.5, env="POPULAR_MIN_RATING")
    new_arrivals_policy: str = Field(default="last_n", env="NEW_ARRIVALS_POLICY")  # last_n | id_prefix
    new_arrivals_count: int = Field(default=5, env="NEW_ARRIVALS_COUNT")
    new_arrivals_id_prefix: str = Field(default="res", env="NEW_ARRIVALS_ID_PREFIX")
    max_results_shown: int = Field(default=10, env="MAX_RESULTS_SHOWN")

    # Location acquisition
    geolocation_timeout_seconds: float = Field(default=30.0, env="GEOLOCATION_TIMEOUT_SECONDS")

    # Orders
    status_poll_interval_seconds: float = Field(default=10.0, env="STATUS_POLL_INTERVAL_SECONDS")
    currency: str = Field(default="USD", env="CURRENCY")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "Shortlink"
    app_version: str = "1.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Database
    database_url: str = "sqlite:///./shortlink.db"

    # Link registry
    base_url: str = "http://127.0.0.1:8000"
    max_retries: int = 5  # Fresh sequence numbers tried when a code hits an alias

    # Sequence allocation
    sequence_backend: str = "database"  # Options: "database", "redis"
    sequence_name: str = "urlId"
    sequence_floor: int = 10000

    # Entitlement gate (JWT issued by the auth service)
    jwt_secret: str = "default_access_secret"
    jwt_algorithm: str = "HS256"
    access_token_cookie: str = "access_token"
    default_credits: int = 10

    # Cache settings
    cache_backend: str = "redis"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 3600  # Cache TTL in seconds (1 hour)

    # Queue settings
    queue_backend: str = "redis_streams"  # Options: "redis_streams", "memory"
    queue_name: str = "link_clicks"
    queue_consumer_group: str = "click_workers"
    queue_batch_size: int = 100  # Number of messages to process at once
    queue_worker_interval: int = 1  # Worker poll interval in seconds
    embedded_click_worker: bool = True  # Run the worker inside the API process

    # Click storage settings (Analytics Database)
    click_storage_backend: str = "sqlite"  # Options: "sqlite", "clickhouse"
    click_storage_sqlite_path: str = "analytics.db"
    click_storage_clickhouse_url: str = "http://localhost:8123"
    click_storage_buffer_size: int = 1000  # Buffer size for batching (ClickHouse)

    # Click classification
    geoip_database_path: Optional[str] = None  # GeoLite2-City.mmdb
    geo_mock_private_ips: bool = True  # Map loopback/private IPs to demo locations
    visitor_cookie_prefix: str = "_vid_"
    visitor_cookie_max_age: int = 365 * 24 * 60 * 60

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Create settings instance
settings = Settings()

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # MongoDB (preview cache backend)
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "url_preview"
    cache_max_active: int = 12000
    # Motor has no idle-count cap; idle sockets are closed after this long
    cache_max_idle_time_ms: int = 60_000
    cache_key_prefix: str = "url_preview:"

    # HTTP fetcher
    http_timeout: float = 10.0
    http_max_retries: int = 0
    http_verify_ssl: bool = True  # set False behind corporate SSL-inspection proxies
    http_user_agent: str = "URLPreviewBot/1.0"

    # Seconds between checks for a client that hung up mid-preview
    disconnect_poll_interval: float = 0.5

    # Logging
    log_level: str = "INFO"


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Nursery Monitor"
    timezone: str = "Asia/Kuala_Lumpur"

    # Storage
    sqlite_path: str = Field(default="nursery.db")

    # Data source: "sim" for development, "cloud" for the real endpoint
    source_mode: str = Field(default="sim")
    http_timeout_seconds: float = 10.0

    # Cloud defaults (used until a stored cloudConfig exists)
    default_endpoint: str = "https://baby-monitoring-server.onrender.com/readings"
    default_device_id: str = "baby-monitor-01"
    default_api_key: str = ""
    default_refresh_interval_ms: int = 5000

    # Acquisition
    failure_threshold: int = 3  # consecutive failed fetches before surfacing an error

    # History: 144 points => 24h at one sample per 10 minutes
    history_capacity: int = 144
    history_refresh_seconds: float = 60.0

    # Notifications
    notification_log_limit: int = 100
    toast_base_ms: int = 5000
    toast_stagger_ms: int = 1000
    toast_max_visible: int = 3

    # Browser push permission: "granted" | "denied" | "default"
    browser_permission: str = "default"
    browser_grant_on_request: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: str | None = "nursery.log"


settings = Settings()

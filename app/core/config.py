"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application environment
    env: Literal["dev", "test", "staging", "prod"] = "dev"

    # Database (rules and rule change log)
    database_url: str = "sqlite+aiosqlite:///./risk_engine.db"

    # Logging
    log_level: str = "INFO"

    # Database initialization
    init_db_on_startup: bool = True

    # Risk evaluation
    risk_timezone: str = "Asia/Shanghai"
    risk_done_statuses: list[str] = ["已完成"]
    risk_rules_file: str = "risk-rules.yaml"

    # Scheduled scan
    risk_scan_enabled: bool = False
    risk_scan_interval_seconds: int = 3600

    # External I/O bounds
    snapshot_timeout_seconds: float = 15.0
    dispatch_timeout_seconds: float = 10.0

    # Feishu Bitable task table
    feishu_base_url: str = "https://open.feishu.cn/open-apis"
    feishu_app_id: str | None = None
    feishu_app_secret: str | None = None
    feishu_app_token: str | None = None
    feishu_table_id: str | None = None
    feishu_page_size: int = 500

    # Chat bot webhook for risk notifications
    feishu_webhook_url: str | None = None

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.env == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode."""
        return self.env == "prod"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # App
    app_env: str = Field(default="development")
    log_level: str = Field(default="info")

    # HTTP
    user_agent: str = Field(default="DevDashboard/1.0")
    http_timeout: float = Field(default=15.0)

    # Fallback token for GitHub sources without their own
    github_token: str = Field(default="")

    # Supabase
    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")

    # Optional webhook receiving every source status change
    status_webhook_url: str = Field(default="")

    # Fetching
    poll_interval_minutes: int = Field(default=30)
    max_concurrent_fetches: int = Field(default=4)

    # Retention
    post_retention_days: int = Field(default=30)
    cleanup_interval_hours: int = Field(default=24)

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


settings = Settings()

from pydantic_settings import BaseSettings
from typing import Optional, List


class Settings(BaseSettings):
    # Chat transport: "websocket" pushes to connected clients, "slack" uses the Slack Web API
    chat_transport: str = "websocket"

    # Slack
    slack_bot_token: Optional[str] = None
    slack_signing_secret: Optional[str] = None
    slack_api_base: str = "https://slack.com/api"

    # Session mappings
    mapping_file: str = "sessions.json"
    mapping_cleanup_interval_minutes: int = 30
    mapping_max_inactive_minutes: int = 60

    # CORS settings
    allowed_origins: str = "http://localhost:8000,http://127.0.0.1:8000"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables not defined in this model

    @property
    def allowed_origins_list(self) -> List[str]:
        """Convert comma-separated origins to list"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


settings = Settings()

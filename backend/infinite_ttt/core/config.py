from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Infinite Tic-Tac-Toe API"
    debug: bool = True
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"

    # Empty disables Redis; rate limit counters then live in process memory.
    redis_url: str = ""

    room_id_length: int = 7
    room_id_max_attempts: int = 32
    max_display_name_length: int = 32
    max_chat_message_length: int = 240

    rate_limit_enabled: bool = True
    rate_limit_global_limit: int = 180
    rate_limit_global_window_seconds: int = 60
    websocket_connect_limit: int = 20
    websocket_connect_window_seconds: int = 60
    websocket_event_limit: int = 180
    websocket_event_window_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    broadstreet_api_token: str = ""
    broadstreet_api_base_url: str = "https://api.broadstreetads.com/api/1"
    request_timeout_seconds: float = 30.0
    rate_limit_interval_seconds: float = 5.0  # upstream quota is global, not per endpoint
    database_url: str = "sqlite:///./admirror.db"
    sync_hour: int = 3
    stream_keepalive_seconds: float = 15.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

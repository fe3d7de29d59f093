"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./party_playlist.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    BROADCAST_URL: str = "memory://"

    SPOTIFY_CLIENT_ID: str = ""
    SPOTIFY_CLIENT_SECRET: str = ""
    SPOTIFY_API_URL: str = "https://api.spotify.com/v1"
    SPOTIFY_ACCOUNTS_URL: str = "https://accounts.spotify.com"
    SPOTIFY_TIMEOUT_SECONDS: float = 10.0

    # Watcher cadence (milliseconds)
    WATCHER_INTERVAL_MS: int = 5000
    WATCHER_QUEUE_INTERVAL_MS: int = 20000
    WATCHER_STATS_INTERVAL_MS: int = 30000
    WATCHER_AUTOSTART: bool = False
    WATCHER_MAX_TENANTS: int = 50

    EVENT_TTL_HOURS: int = 24
    SYSTEM_CONTROL_TOKEN: str = ""

    class Config:
        env_file = ".env"


settings = Settings()

import os
from pathlib import Path
from pydantic_settings import BaseSettings

# Package directory (src/timesync)
BASE_DIR = Path(__file__).resolve().parents[1]

# Test page served by the responder on "/"
STATIC_DIR = os.getenv("TIMESYNC_STATIC_DIR", str(BASE_DIR / "api" / "static"))

DEFAULT_URL = "wss://time-server-production.up.railway.app"


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Client Settings
    URL: str = DEFAULT_URL
    RESYNC_INTERVAL: float = 10 * 60.0  # seconds
    PROBE_COUNT: int = 5
    PROBE_TIMEOUT: float = 5.0
    RECONNECT_BASE_DELAY: float = 2.0
    RECONNECT_MAX_DELAY: float = 60.0
    RECONNECT_MULTIPLIER: float = 1.5
    FAILURE_RETRY_DELAY: float = 30.0

    # Responder Settings
    HOST: str = "0.0.0.0"
    PORT: int = 4200
    INDEX_PAGE: str = str(Path(STATIC_DIR) / "index.html")

    LOG_LEVEL: str = "INFO"

    class Config:
        env_prefix = "TIMESYNC_"
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()

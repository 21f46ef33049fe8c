"""
backend/app/config.py

Purpose:
    Central settings loading for the match lifecycle and settlement engine.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # MongoDB (transactions need a replica set, even a single-node one)
    MONGO_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGO_DB: str = "freebet"
    MONGO_TIMEOUT_MS: int = 10000
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    SETTLEMENT_COMMIT_TIMEOUT_MS: int = 30000

    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # The Odds API. Empty key is reported at fetch time, not at startup.
    ODDS_API_KEY: str = ""
    THEODDSAPI_BASE_URL: str = "https://api.the-odds-api.com/v4"
    ODDS_SPORT_KEY: str = "soccer_epl"
    ODDS_REGIONS: str = "us"
    ODDS_MARKETS: str = "h2h"
    ODDS_BOOKMAKERS: str = "marathonbet"
    SCORES_DAYS_FROM: int = 3

    # Feed transport
    FEED_TIMEOUT_SECONDS: float = 15.0
    FEED_MAX_RETRIES: int = 2
    FEED_RETRY_BASE_DELAY_SECONDS: float = 2.0

    # Settlement notifications (best-effort)
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHANNEL_ID: str = ""
    TELEGRAM_TIMEOUT_SECONDS: float = 10.0

    # Optional scheduled triggers (off: operators trigger via the engine router)
    ENGINE_AUTOMATION_ENABLED: bool = False
    ODDS_SYNC_INTERVAL_MINUTES: int = 60
    SCORES_SYNC_INTERVAL_MINUTES: int = 30
    SETTLEMENT_INTERVAL_MINUTES: int = 30

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()

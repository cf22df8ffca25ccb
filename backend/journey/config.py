# engine configuration
# loads env vars for mongodb, jwt, gemini, rate limits, and signal thresholds

import os
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# load .env from project root
load_dotenv(Path(__file__).parent.parent.parent / ".env")


class Settings(BaseSettings):
    # mongodb
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "journey_db")

    # jwt auth (identity is resolved from a bearer token)
    JWT_SECRET: str = os.getenv("JWT_SECRET", "journey-dev-secret-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # gemini (chat replies, sentiment, pattern candidates)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    INFERENCE_TIMEOUT_SECONDS: float = 20.0
    SENTIMENT_TIMEOUT_SECONDS: float = 15.0

    # cors
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # rate limiting: requests per fixed window, per user and category
    RATE_LIMITS: dict[str, int] = {
        "chat": 30,
        "journal": 10,
        "mood": 60,
        "cbt": 10,
        "pattern": 5,
    }
    RATE_LIMIT_WINDOW_MS: int = 60 * 1000
    RATE_LIMIT_SWEEP_PROBABILITY: float = 0.01
    RATE_LIMIT_BACKEND: str = os.getenv("RATE_LIMIT_BACKEND", "memory")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # input limits
    CHAT_MESSAGE_MAX_LENGTH: int = 2000
    CHAT_HISTORY_MAX_TURNS: int = 20

    # calendar: streak days are counted in this zone, not utc or server local time
    REFERENCE_TIMEZONE: str = os.getenv("REFERENCE_TIMEZONE", "America/Toronto")
    STREAK_MAX_LOOKBACK_DAYS: int = 365

    # mood trend windows and thresholds (per call site)
    TREND_WINDOW_DAYS: int = 7
    TREND_THRESHOLD: float = 0.5
    CONTEXT_TREND_THRESHOLD: float = 0.3
    COACH_TREND_THRESHOLD: float = 0.5

    # pattern lifecycle
    PATTERN_MIN_ENTRIES: int = 5
    PATTERN_LOOKBACK_DAYS: int = 28
    PATTERN_SURFACE_CONFIDENCE: float = 0.7
    PATTERN_SIMILARITY_THRESHOLD: float = 0.85
    PATTERN_DEDUP_INCLUDE_DISMISSED: bool = True
    PATTERN_STALE_DAYS: int = 28
    PATTERN_RETENTION_DAYS: int = 60
    PATTERN_DETECTION_INTERVAL: int = 5

    # context synthesis
    MAX_CONTEXT_CHARS: int = 1500
    CONTEXT_SECTION_ORDER: list[str] = ["patterns", "cbt", "reflection", "mood_trend", "what_works"]

    # background journal analysis
    ANALYSIS_MAX_ATTEMPTS: int = 3
    ANALYSIS_RETRY_DELAY_SECONDS: float = 2.0

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()

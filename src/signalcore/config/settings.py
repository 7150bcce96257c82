"""Engine settings using Pydantic BaseSettings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str = "INFO"

    # Risk policy
    DEFAULT_RISK_PERCENT: float = Field(default=2.0, gt=0)
    MAX_RISK_PERCENT: float = Field(default=5.0, gt=0)
    MAX_POSITION_SIZE: float = Field(default=50_000.0, gt=0)
    MAX_POSITION_PERCENT: float = 25.0  # fixed portfolio policy
    MIN_PORTFOLIO_SIZE: float = 1_000.0

    # Scheduler
    TICK_INTERVAL_SECONDS: int = Field(default=60, ge=1)
    SCAN_INTERVAL_MIN_MINUTES: int = 5
    SCAN_INTERVAL_MAX_MINUTES: int = 1440
    MAX_SCANS_PER_TICK: int = Field(default=5, ge=1)
    SCAN_CANDLE_COUNT: int = 250

    # Advisory throttling
    MAX_CONCURRENT_AI_CALLS: int = Field(default=1, ge=1)
    AI_CALL_DELAY_MS: int = Field(default=3000, ge=0)
    PAUSE_AI_DURING_MARKET_HOURS: bool = False
    MARKET_OPEN_HOUR_UTC: int = Field(default=14, ge=0, le=23)
    MARKET_CLOSE_HOUR_UTC: int = Field(default=21, ge=0, le=24)

    # Alerting / auto-trade thresholds
    ALERT_MIN_PATTERN_CONFIDENCE: float = 75.0
    ALERT_MIN_AI_CONFIDENCE: float = 70.0
    DEFAULT_MAX_EXPIRATION_DAYS: int = 30
    SIMULATION_PORTFOLIO_SIZE: float = Field(default=100_000.0, gt=0)

    # Collaborator timeouts
    MARKET_DATA_TIMEOUT_SECONDS: float = 30.0
    AI_TIMEOUT_SECONDS: float = 120.0

    # Advisory (Ollama)
    OLLAMA_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1"

    # Data / persistence
    DATA_PROVIDER_DEFAULT: str = "yfinance"
    DATABASE_PATH: Path = Path.home() / ".signalcore" / "signalcore.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""
Configuration settings for the MFL Proxy Backend.
Supports testing, development, and production environments.
"""

import os
from typing import Dict, List
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """
    Application settings with environment-aware configuration.

    Supports three modes:
    - TEST: Used by the test suite
    - DEVELOPMENT: Enables periodic cache statistics logging
    - PRODUCTION: Quiet defaults
    """

    # Environment mode: TEST, DEVELOPMENT, or PRODUCTION
    MODE: str = os.getenv("MODE", "DEVELOPMENT").upper()

    # Application settings
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    PORT: int = int(os.getenv("PORT", "3000"))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # MFL API settings
    MFL_BASE_URL: str = os.getenv("MFL_BASE_URL", "https://api.myfantasyleague.com/2025")
    MFL_USER_AGENT: str = os.getenv("MFL_USER_AGENT", "MFL-Proxy-Backend/1.0")
    MFL_REQUEST_TIMEOUT: float = float(os.getenv("MFL_REQUEST_TIMEOUT", "10"))
    MFL_LOGIN_TIMEOUT: float = float(os.getenv("MFL_LOGIN_TIMEOUT", "8"))
    MFL_MAX_REQUESTS_PER_SECOND: float = float(os.getenv("MFL_MAX_REQUESTS_PER_SECOND", "2"))

    # Cache TTLs per category (seconds)
    CACHE_TTL_LEAGUE_INFO: int = int(os.getenv("CACHE_TTL_LEAGUE_INFO", "3600"))
    CACHE_TTL_ROSTERS: int = int(os.getenv("CACHE_TTL_ROSTERS", "900"))
    CACHE_TTL_LIVE_SCORES: int = int(os.getenv("CACHE_TTL_LIVE_SCORES", "120"))
    CACHE_TTL_PLAYERS: int = int(os.getenv("CACHE_TTL_PLAYERS", "86400"))
    CACHE_TTL_STANDINGS: int = int(os.getenv("CACHE_TTL_STANDINGS", "1800"))
    CACHE_TTL_TRANSACTIONS: int = int(os.getenv("CACHE_TTL_TRANSACTIONS", "600"))
    CACHE_CHECK_PERIOD_SECONDS: int = int(os.getenv("CACHE_CHECK_PERIOD_SECONDS", "120"))

    # Sessions
    SESSION_TTL_HOURS: int = int(os.getenv("SESSION_TTL_HOURS", "8"))
    SESSION_CLEANUP_INTERVAL_MINUTES: int = int(os.getenv("SESSION_CLEANUP_INTERVAL_MINUTES", "60"))

    # Inbound rate limit on /api, per client IP
    RATE_LIMIT_WINDOW_MS: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))

    class Config:
        """Pydantic configuration."""
        case_sensitive = True
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def cache_ttls(self) -> Dict[str, int]:
        """
        Get per-category cache TTLs keyed by category value.

        Returns:
            Mapping of cache category name to TTL in seconds.
        """
        return {
            "leagueInfo": self.CACHE_TTL_LEAGUE_INFO,
            "rosters": self.CACHE_TTL_ROSTERS,
            "liveScores": self.CACHE_TTL_LIVE_SCORES,
            "players": self.CACHE_TTL_PLAYERS,
            "standings": self.CACHE_TTL_STANDINGS,
            "transactions": self.CACHE_TTL_TRANSACTIONS,
        }

    @property
    def api_rate_limit(self) -> str:
        """Inbound limit in slowapi notation, e.g. "100 per 60 seconds"."""
        window_seconds = max(1, self.RATE_LIMIT_WINDOW_MS // 1000)
        return f"{self.RATE_LIMIT_MAX_REQUESTS} per {window_seconds} seconds"

    @property
    def cors_origins(self) -> List[str]:
        """Split the comma-separated CORS origin list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.MODE == "DEVELOPMENT"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.MODE == "PRODUCTION"


# Global settings instance
settings = Settings()

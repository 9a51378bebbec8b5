"""Configuration management for the payroll disbursement engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    engine_version: str
    host: str
    port: int
    debug: bool
    log_level: str
    top_up_increment: int
    min_top_up: int
    max_top_up: int
    batch_lock_timeout_seconds: float
    external_funding_account_id: str

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite:///./payroll_disbursement.db",
            ),
            engine_version=os.getenv("ENGINE_VERSION", "1.0.0"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            top_up_increment=int(os.getenv("TOP_UP_INCREMENT", "1000")),
            min_top_up=int(os.getenv("MIN_TOP_UP", "1000")),
            max_top_up=int(os.getenv("MAX_TOP_UP", "1000000")),
            batch_lock_timeout_seconds=float(os.getenv("BATCH_LOCK_TIMEOUT_SECONDS", "30")),
            external_funding_account_id=os.getenv(
                "EXTERNAL_FUNDING_ACCOUNT_ID",
                "external-funding-source",
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()

"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All endpoints and secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - agent_be_url has no trailing slash; empty means "not configured"
      (claim and onboarding flows raise ConfigMissingError before any IO)

Design Decisions:
    - Defaults target Stellar testnet so the service works out-of-the-box
    - verification_store selects the registry backend: "memory" (single
      process) or "database" (shared across workers)
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Agent backend (orders + onboarding)
    agent_be_url: str = ""
    agent_timeout_seconds: float = 15.0
    whatsapp_agent_number: str = ""

    @field_validator("agent_be_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/") if isinstance(v, str) else v

    # Stellar
    horizon_url: str = "https://horizon-testnet.stellar.org"
    horizon_timeout_seconds: float = 30.0
    stellar_network: Literal["PUBLIC", "TESTNET", "FUTURENET", "STANDALONE"] = "TESTNET"
    usdc_asset_code: str = "USDC"
    usdc_asset_issuer: str = (
        "GATALTGTWIOT6BUDBCZM3Q4OQ4BO2COLOAZ7IYSKPLC2PMSOPPGF5V56"
    )
    wallet_selection_wait_ms: int = 500

    # Verification registry
    verification_store: Literal["memory", "database"] = "memory"
    verification_ttl_minutes: int = 30

    # Database (only used by verification_store="database")
    database_url: str = "sqlite+aiosqlite:///./pasatanda.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Railway provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Onboarding wizard
    verification_poll_interval_seconds: float = 3.0
    verification_poll_timeout_seconds: float = 600.0
    onboarding_redirect_delay_seconds: float = 7.0

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()

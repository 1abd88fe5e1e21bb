"""Configuration settings for TokenTribute backend."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""

    # Ethos reputation network
    ethos_api_base: str = "https://api.ethos.network/api/v2"
    ethos_client_header: str = "TokenTribute/1.0.0"
    ethos_timeout_seconds: float = 10.0

    # Chain (Base Sepolia USDC)
    rpc_url: str = "https://sepolia.base.org"
    chain_id: int = 84532
    usdc_contract_address: str = ""
    usdc_decimals: int = 6
    wallet_private_key: str = ""
    confirmation_timeout_seconds: float = 120.0
    confirmation_poll_seconds: float = 2.0

    # Credibility gates, one per capability
    donation_min_score: int = 1400
    listing_min_score: int = 1200

    # Donation storage
    donations_table: str = "donations"
    donations_feed_limit: int = 100
    degraded_dedupe_window_seconds: int = 5
    donation_api_url: str = "http://localhost:8000"
    donation_api_timeout_seconds: float = 10.0

    # Frontend
    public_app_url: str = "http://localhost:3000"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

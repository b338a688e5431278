from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed runtime settings."""

    app_name: str = "PriceTrend"
    env: str = "dev"
    log_level: str = "INFO"
    default_symbol: str = "AAPL"
    default_years: int = Field(default=1, gt=0)
    sync_years: int = Field(default=7, gt=0)

    database_url: str = "sqlite:///data/pricetrend.db"
    store_timeout_seconds: float = Field(default=10.0, gt=0)
    rate_limit_per_minute: int = Field(default=120, gt=0)
    api_key: str | None = None
    synthetic_base_price: float = Field(default=150.0, gt=0)

    @field_validator("api_key", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    model_config = SettingsConfigDict(
        env_prefix="PRICETREND_",
        env_file=".env",
        env_file_encoding="utf-8-sig",
        extra="ignore",
    )

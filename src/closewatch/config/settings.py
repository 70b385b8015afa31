"""Configuration settings for the close review engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Journal entry rules
    je_duplicate_tolerance: float = Field(
        default=1.0, validation_alias="JE_DUPLICATE_TOLERANCE"
    )
    je_unusual_stddev_threshold: float = Field(
        default=3.0, validation_alias="JE_UNUSUAL_STDDEV_THRESHOLD"
    )
    je_minimum_history_count: int = Field(
        default=6, validation_alias="JE_MINIMUM_HISTORY_COUNT"
    )
    je_late_reversal_days: int = Field(default=10, validation_alias="JE_LATE_REVERSAL_DAYS")

    # Accrual policy
    accrual_current_period: str = Field(
        default="2025-07", validation_alias="ACCRUAL_CURRENT_PERIOD"
    )
    accrual_minimum_invoices: int = Field(
        default=4, validation_alias="ACCRUAL_MINIMUM_INVOICES"
    )
    accrual_average_last_n: int = Field(default=3, validation_alias="ACCRUAL_AVERAGE_LAST_N")
    accrual_monthly_tolerance_days: int = Field(
        default=7, validation_alias="ACCRUAL_MONTHLY_TOLERANCE_DAYS"
    )
    accrual_quarterly_tolerance_days: int = Field(
        default=15, validation_alias="ACCRUAL_QUARTERLY_TOLERANCE_DAYS"
    )
    accrual_credit_account: str = Field(
        default="2100 - Accrued Expenses", validation_alias="ACCRUAL_CREDIT_ACCOUNT"
    )

    # Narrative LLM (optional, deterministic fallback when unset)
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    gpt_model: str = Field(default="gpt-4o-mini", validation_alias="GPT_MODEL")
    llm_max_tokens: int = Field(default=1024, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.2, validation_alias="LLM_TEMPERATURE")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()

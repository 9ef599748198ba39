"""
config.py — tpledger application settings.

Usage:
    from tpledger.config import settings
    print(settings.default_assessment_year)

Never use FastAPI Depends() for settings; import directly as a module-level singleton.
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore any extra env vars
    )

    # --- CORS ---
    # Comma-separated list of allowed frontend origins
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # --- Application ---
    debug: bool = True
    app_version: str = "0.1.0"

    # --- Section 94B engine ---
    # Used when a caller omits the assessment year
    default_assessment_year: str = "2025-26"
    # False = exempt / below-threshold periods leave the brought-forward ledger untouched.
    # True  = such periods still expire stale deposits (no utilization, no new deposit).
    age_ledger_when_inapplicable: bool = False

    # --- Projection ---
    assumed_tax_rate: float = 0.30       # Flat corporate rate for net tax impact
    max_projection_years: int = 25
    max_growth_rate: float = 1.0         # 100% a year: anything above is rejected

    @property
    def cors_origins_list(self) -> List[str]:
        """Split comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Module-level singleton: import this throughout the codebase
settings = Settings()

from __future__ import annotations
# BaseSettings moved to the pydantic-settings package in Pydantic v2
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Database backing the audit log. PostgreSQL when DB_HOST is set,
    # otherwise DATABASE_URL (SQLite by default).
    db_host: str | None = Field(None, alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str | None = Field(None, alias="DB_USER")
    db_password: str | None = Field(None, alias="DB_PASSWORD")
    db_name: str | None = Field(None, alias="DB_NAME")
    db_timeout: int = Field(30, alias="DB_TIMEOUT")
    database_url: str = Field(
        "sqlite+aiosqlite:///./grid_command_center.db", alias="DATABASE_URL"
    )

    # Feeder status tiers and control loop thresholds (percent of capacity)
    low_threshold_pct: float = Field(75.0, alias="LOW_THRESHOLD_PCT")
    high_threshold_pct: float = Field(90.0, alias="HIGH_THRESHOLD_PCT")
    max_load_pct: float = Field(100.0, alias="MAX_LOAD_PCT")

    # Background loops
    load_simulation_enabled: bool = Field(True, alias="LOAD_SIMULATION_ENABLED")
    load_tick_interval_s: float = Field(3.0, alias="LOAD_TICK_INTERVAL_S")
    auto_activation_enabled: bool = Field(True, alias="AUTO_ACTIVATION_ENABLED")
    auto_activation_interval_s: float = Field(5.0, alias="AUTO_ACTIVATION_INTERVAL_S")
    auto_activation_der_count: int = Field(2, alias="AUTO_ACTIVATION_DER_COUNT")
    simulation_seed: int | None = Field(None, alias="SIMULATION_SEED")

    # Beckn (DEG) gateway
    beckn_gateway: Literal["mock", "sandbox"] = Field("mock", alias="BECKN_GATEWAY")
    bap_sandbox_url: str = Field("http://localhost:5001", alias="BAP_SANDBOX_URL")
    bap_id: str = Field("grid-command-center", alias="BAP_ID")
    bap_uri: str = Field("http://localhost:5000", alias="BAP_URI")
    beckn_timeout_s: float = Field(10.0, alias="BECKN_TIMEOUT_S")
    journey_compensate_on_failure: bool = Field(False, alias="JOURNEY_COMPENSATE_ON_FAILURE")

    # Command center dashboard
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        alias="CORS_ORIGINS",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @field_validator("low_threshold_pct", "high_threshold_pct", "max_load_pct")
    @classmethod
    def _check_percent(cls, value: float) -> float:
        if value <= 0 or value > 100:
            raise ValueError("percentage thresholds must be in (0, 100]")
        return value

    @field_validator("load_tick_interval_s", "auto_activation_interval_s", "beckn_timeout_s")
    @classmethod
    def _check_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("intervals and timeouts must be positive")
        return value

    @model_validator(mode="after")
    def _check_threshold_order(self) -> "Settings":
        if self.low_threshold_pct >= self.high_threshold_pct:
            raise ValueError("LOW_THRESHOLD_PCT must be below HIGH_THRESHOLD_PCT")
        return self

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.db_host:
            return (
                f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
                f"@{self.db_host}:{self.db_port}/{self.db_name}"
            )
        return self.database_url


_settings_instance = None


def get_settings():
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


# Module-level instance shared by the app and its services
settings = get_settings()

"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Clinical thresholds are configuration, not constants buried in services
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()

BaselineMode = Literal["previous", "first"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class TrendSettings(BaseModel):
    """Trend classification thresholds."""

    rom_threshold: float = Field(
        default=5.0, gt=0.0, description="Minimum ROM change in degrees to count as a trend"
    )
    mmt_threshold: float = Field(
        default=1.0, gt=0.0, description="Minimum MMT grade change to count as a trend"
    )
    comparison_span: int = Field(
        default=1, ge=1, description="How many records back the baseline is taken from"
    )
    baseline_mode: BaselineMode = Field(
        default="previous",
        description="'previous': compare against comparison_span records back; "
        "'first': compare against the first record of the group",
    )


class StoreConfig(BaseModel):
    """Local record store configuration."""

    backend: Literal["memory", "json"] = Field(default="memory", description="Store backend")
    path: str = Field(
        default="./clinical_records.json", description="File path for the json backend"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(default="INFO", description="Logging level")
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    trend: TrendSettings = Field(default_factory=TrendSettings)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> LogLevel:
        v = val.strip().upper()
        return cast(LogLevel, v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO")

    def _baseline_mode(val: str) -> BaselineMode:
        return "first" if val.strip().lower() == "first" else "previous"

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    trend_settings = TrendSettings(
        rom_threshold=float(os.getenv("TREND_ROM_THRESHOLD", "5.0")),
        mmt_threshold=float(os.getenv("TREND_MMT_THRESHOLD", "1.0")),
        comparison_span=int(os.getenv("TREND_COMPARISON_SPAN", "1")),
        baseline_mode=_baseline_mode(os.getenv("TREND_BASELINE_MODE", "previous")),
    )

    backend = os.getenv("RECORD_STORE_BACKEND", "memory").strip().lower()
    store_config = StoreConfig(
        backend="json" if backend == "json" else "memory",
        path=os.getenv("RECORD_STORE_PATH", "./clinical_records.json"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        trend=trend_settings,
        store=store_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")
    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nTREND ANALYSIS")
    print(f"ROM threshold: {config.trend.rom_threshold} degrees")
    print(f"MMT threshold: {config.trend.mmt_threshold} grade")
    print(f"Comparison span: {config.trend.comparison_span}")
    print(f"Baseline mode: {config.trend.baseline_mode}")

    print("\nRECORD STORE")
    print(f"Backend: {config.store.backend}")
    if config.store.backend == "json":
        print(f"Path: {config.store.path}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()

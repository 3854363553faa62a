"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class BookingWindowConfig(BaseModel):
    """Fixed working-hours template shared by all partners."""
    open_hour: int = 8
    close_hour: int = 18
    step_minutes: int = 30
    horizon_days: int = 14
    lead_time_minutes: int = 0
    enforce_unique_slots: bool = True

    @field_validator("open_hour", "close_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("step_minutes", "horizon_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("lead_time_minutes")
    @classmethod
    def validate_lead_time(cls, value: int) -> int:
        if value < 0:
            raise ValueError("lead_time_minutes must not be negative")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BookingWindowConfig":
        """Ensure the configured window opens before it closes."""
        if self.close_hour <= self.open_hour:
            raise ValueError("close_hour must be later than open_hour")
        return self


class RecordStoreConfig(BaseModel):
    """Connection settings of the hosted backend."""
    url: str = ""
    anon_key: str = ""
    timeout_seconds: int = 30

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)


class AppConfig(BaseModel):
    """Application configuration."""
    store: RecordStoreConfig = Field(default_factory=RecordStoreConfig)
    booking: BookingWindowConfig = Field(default_factory=BookingWindowConfig)
    timezone: str = "America/Sao_Paulo"
    log_level: str = "WARNING"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

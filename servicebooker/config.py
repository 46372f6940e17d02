"""
Configuration management using Pydantic models.

Two layers:

- ``AppConfig``: process configuration loaded from YAML (database, logging,
  and the seed data written by ``init-db``).
- ``SchedulerConfig``: the business scheduling settings, read from a
  ``SettingsProvider`` once per request with documented fallbacks.
"""

from datetime import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.buffer_policy import (
    ASYMMETRIC_SELF_EXEMPT,
    SYMMETRIC_UNIVERSAL,
    BufferPolicy,
    build_buffer_policy,
)
from .domain.conflicts import SchedulingRules
from .domain.exceptions import ConfigurationUnavailable
from .domain.models import RateTierBand, Resource
from .domain.timezone import BusinessTimezone

BUFFER_BEFORE_KEY = "scheduler_buffer_before_hours"
BUFFER_AFTER_KEY = "scheduler_buffer_after_hours"
DEFAULT_DURATION_KEY = "scheduler_default_slot_duration_hours"
MINIMUM_ADVANCE_KEY = "scheduler_minimum_advance_hours"
BUFFER_POLICY_KEY = "scheduler_buffer_policy"
MAX_OPEN_REQUESTS_KEY = "scheduler_max_open_requests"
BASE_HOURLY_RATE_KEY = "scheduler_base_hourly_rate"
BUSINESS_TIMEZONE_KEY = "business_timezone"

# Setting key -> SchedulerConfig field
SETTING_FIELDS = {
    BUFFER_BEFORE_KEY: "buffer_before_hours",
    BUFFER_AFTER_KEY: "buffer_after_hours",
    DEFAULT_DURATION_KEY: "default_slot_duration_hours",
    MINIMUM_ADVANCE_KEY: "minimum_advance_hours",
    BUFFER_POLICY_KEY: "buffer_policy",
    MAX_OPEN_REQUESTS_KEY: "max_open_requests",
    BASE_HOURLY_RATE_KEY: "base_hourly_rate",
    BUSINESS_TIMEZONE_KEY: "business_timezone",
}


class SchedulerConfig(BaseModel):
    """Business scheduling settings with their fallback defaults."""
    buffer_before_hours: float = 2
    buffer_after_hours: float = 1
    default_slot_duration_hours: float = 2
    minimum_advance_hours: float = 1
    buffer_policy: str = ASYMMETRIC_SELF_EXEMPT
    max_open_requests: int = 5
    base_hourly_rate: float = 100.0
    business_timezone: Optional[str] = None

    @field_validator("buffer_before_hours", "buffer_after_hours", "minimum_advance_hours")
    @classmethod
    def validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("hours must not be negative")
        return value

    @field_validator("default_slot_duration_hours")
    @classmethod
    def validate_default_duration(cls, value: float) -> float:
        if not 1 <= value <= 6:
            raise ValueError(f"default slot duration must be between 1 and 6 hours, got {value}")
        if (value * 2) != int(value * 2):
            raise ValueError(f"default slot duration must be a multiple of 0.5 hours, got {value}")
        return value

    @field_validator("buffer_policy")
    @classmethod
    def validate_buffer_policy(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in (SYMMETRIC_UNIVERSAL, ASYMMETRIC_SELF_EXEMPT):
            raise ValueError(f"unknown buffer policy: {value}")
        return value

    @field_validator("max_open_requests")
    @classmethod
    def validate_max_open(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_open_requests must be greater than zero")
        return value

    @field_validator("base_hourly_rate")
    @classmethod
    def validate_rate(cls, value: float) -> float:
        if value < 0:
            raise ValueError("base_hourly_rate must not be negative")
        return value

    @field_validator("business_timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @classmethod
    def from_settings(cls, provider) -> "SchedulerConfig":
        """
        Build the configuration from a settings provider.

        Absent or empty settings fall back to the field defaults.

        Raises:
            ConfigurationUnavailable: If a stored setting cannot be parsed
        """
        raw = provider.get_settings(SETTING_FIELDS.keys())
        values: Dict[str, Any] = {}
        for key, field_name in SETTING_FIELDS.items():
            value = raw.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            values[field_name] = value
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationUnavailable(f"Invalid scheduler settings: {exc}") from exc

    def business_tz(self) -> BusinessTimezone:
        return BusinessTimezone(self.business_timezone)

    def make_buffer_policy(self) -> BufferPolicy:
        return build_buffer_policy(
            self.buffer_policy, self.buffer_before_hours, self.buffer_after_hours
        )

    def scheduling_rules(self) -> SchedulingRules:
        return SchedulingRules(
            buffer_policy=self.make_buffer_policy(),
            minimum_advance=pendulum.duration(minutes=int(self.minimum_advance_hours * 60)),
        )

    def as_settings(self) -> Dict[str, Any]:
        """Inverse of ``from_settings``: setting key -> value."""
        return {key: getattr(self, name) for key, name in SETTING_FIELDS.items()}


class RateTierConfig(BaseModel):
    """One rate band as written in YAML. ``day_of_week``: 0=Monday ... 6=Sunday."""
    tier_name: str
    tier_level: int
    day_of_week: int
    start: time
    end: time
    rate_multiplier: float = 1.0
    color_code: str = "#28a745"
    description: str = ""

    @field_validator("start", "end", mode="before")
    @classmethod
    def reject_unquoted_times(cls, value: Any) -> Any:
        # YAML 1.1 reads an unquoted 17:00 as the base-60 integer 1020.
        if isinstance(value, int):
            raise ValueError("times must be quoted strings such as '17:00'")
        return value

    @field_validator("tier_level")
    @classmethod
    def validate_level(cls, value: int) -> int:
        if value not in (1, 2, 3):
            raise ValueError(f"tier_level must be 1, 2 or 3, got {value}")
        return value

    @field_validator("day_of_week")
    @classmethod
    def validate_day(cls, value: int) -> int:
        if value not in range(7):
            raise ValueError(f"day_of_week must be between 0 and 6, got {value}")
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "RateTierConfig":
        if self.end <= self.start:
            raise ValueError("end must be later than start")
        return self

    def to_band(self) -> RateTierBand:
        return RateTierBand(
            tier_name=self.tier_name,
            tier_level=self.tier_level,
            day_of_week=self.day_of_week,
            time_start=self.start,
            time_end=self.end,
            rate_multiplier=self.rate_multiplier,
            color_code=self.color_code,
            description=self.description,
        )


STANDARD_COLOR = "#28a745"
PREMIUM_COLOR = "#ffc107"
EMERGENCY_COLOR = "#dc3545"
END_OF_DAY = time(23, 59, 59)


class ResourceConfig(BaseModel):
    """A service location seeded by ``init-db``."""
    id: str
    name: str
    type: str = "Service Location"
    description: Optional[str] = None
    is_active: bool = True

    def to_resource(self) -> Resource:
        return Resource(
            id=self.id,
            name=self.name,
            resource_type=self.type,
            description=self.description,
            is_available=self.is_active,
        )


def default_rate_tiers() -> List[RateTierConfig]:
    """Weekday business/evening/overnight bands and weekend premium/overnight bands."""
    tiers: List[RateTierConfig] = []
    for day in range(5):
        tiers.extend([
            RateTierConfig(tier_name="Standard", tier_level=1, day_of_week=day,
                           start=time(8), end=time(17), rate_multiplier=1.0,
                           color_code=STANDARD_COLOR, description="Standard business hours"),
            RateTierConfig(tier_name="Premium", tier_level=2, day_of_week=day,
                           start=time(6), end=time(8), rate_multiplier=1.25,
                           color_code=PREMIUM_COLOR, description="Early morning premium hours"),
            RateTierConfig(tier_name="Premium", tier_level=2, day_of_week=day,
                           start=time(17), end=time(22), rate_multiplier=1.25,
                           color_code=PREMIUM_COLOR, description="Evening premium hours"),
            RateTierConfig(tier_name="Emergency", tier_level=3, day_of_week=day,
                           start=time(22), end=END_OF_DAY, rate_multiplier=1.75,
                           color_code=EMERGENCY_COLOR, description="Late night emergency hours"),
            RateTierConfig(tier_name="Emergency", tier_level=3, day_of_week=day,
                           start=time(0), end=time(6), rate_multiplier=1.75,
                           color_code=EMERGENCY_COLOR, description="Overnight emergency hours"),
        ])
    for day in (5, 6):
        tiers.extend([
            RateTierConfig(tier_name="Premium", tier_level=2, day_of_week=day,
                           start=time(8), end=time(22), rate_multiplier=1.5,
                           color_code=PREMIUM_COLOR, description="Weekend premium hours"),
            RateTierConfig(tier_name="Emergency", tier_level=3, day_of_week=day,
                           start=time(22), end=END_OF_DAY, rate_multiplier=2.0,
                           color_code=EMERGENCY_COLOR, description="Late night emergency hours"),
            RateTierConfig(tier_name="Emergency", tier_level=3, day_of_week=day,
                           start=time(0), end=time(8), rate_multiplier=2.0,
                           color_code=EMERGENCY_COLOR, description="Overnight emergency hours"),
        ])
    return tiers


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite:///servicebooker.db"
    log_level: str = "WARNING"
    settings: SchedulerConfig = Field(default_factory=SchedulerConfig)
    rate_tiers: List[RateTierConfig] = Field(default_factory=default_rate_tiers)
    resources: List[ResourceConfig] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    def rate_tier_bands(self) -> List[RateTierBand]:
        return [tier.to_band() for tier in self.rate_tiers]

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
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Fall back to the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

"""
Configuration management using Pydantic models loaded from YAML.
"""

from __future__ import annotations

from datetime import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import Break, ScheduleConfig, ServiceInfo, WorkInterval
from .domain.schedule import ALLOWED_SLOT_STEPS, validate_schedule
from .domain.timezones import parse_clock, resolve_timezone


def _coerce_clock(value: Any) -> Any:
    """Accept ``HH:mm`` strings, including the base-60 integers YAML 1.1 makes of them."""
    if isinstance(value, int):
        # Unquoted 10:30 is read by PyYAML as 10 * 60 + 30
        return time(hour=value // 60, minute=value % 60)
    if isinstance(value, str):
        return parse_clock(value)
    return value


class IntervalConfig(BaseModel):
    """A local wall-clock window."""
    start: time
    end: time

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_clock_value(cls, value: Any) -> Any:
        return _coerce_clock(value)

    @model_validator(mode="after")
    def validate_order(self) -> "IntervalConfig":
        """Ensure the window opens before it closes."""
        if self.end <= self.start:
            raise ValueError("end must be later than start")
        return self


class BreakConfig(IntervalConfig):
    """A daily break."""
    reason: Optional[str] = None


class DayScheduleConfig(BaseModel):
    """Work intervals of one weekday."""
    weekday: int  # 0=Monday, 6=Sunday
    intervals: List[IntervalConfig] = Field(default_factory=list)

    @field_validator("weekday")
    @classmethod
    def validate_weekday(cls, value: int) -> int:
        """Validate weekday is between 0 and 6."""
        if value not in range(7):
            raise ValueError(f"weekday must be between 0 and 6, got {value}")
        return value


class ServiceConfig(BaseModel):
    """A bookable service."""
    id: str
    name: str = ""
    duration_minutes: int
    buffer_minutes: Optional[int] = None  # None: use the practitioner's buffer

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("buffer_minutes must not be negative")
        return value

    def to_service_info(self) -> ServiceInfo:
        return ServiceInfo(
            id=self.id,
            name=self.name,
            duration_minutes=self.duration_minutes,
            buffer_minutes=self.buffer_minutes,
        )


class PractitionerConfig(BaseModel):
    """Practitioner schedule configuration."""
    id: str
    name: str = ""
    timezone: Optional[str] = None  # None: use the application timezone
    work_schedule: List[DayScheduleConfig] = Field(default_factory=list)
    breaks: List[BreakConfig] = Field(default_factory=list)
    buffer_minutes: int = 15
    slot_step_minutes: int = 15
    min_service_duration_minutes: int = 15
    auto_buffer: bool = False
    slot_compression: bool = False

    @field_validator("slot_step_minutes")
    @classmethod
    def validate_slot_step(cls, value: int) -> int:
        if value not in ALLOWED_SLOT_STEPS:
            raise ValueError(f"slot_step_minutes must be one of {ALLOWED_SLOT_STEPS}, got {value}")
        return value

    @field_validator("work_schedule")
    @classmethod
    def validate_unique_weekdays(cls, value: List[DayScheduleConfig]) -> List[DayScheduleConfig]:
        """Ensure every weekday is configured at most once."""
        weekdays = [day.weekday for day in value]
        duplicates = sorted({day for day in weekdays if weekdays.count(day) > 1})
        if duplicates:
            raise ValueError(f"Duplicate weekday(s) in work_schedule: {duplicates}")
        return value

    def display_name(self) -> str:
        """Get display name."""
        return self.name or self.id

    def to_schedule(self, default_timezone: str) -> ScheduleConfig:
        """Build the domain schedule."""
        work_intervals: Dict[int, List[WorkInterval]] = {
            day.weekday: [WorkInterval(start=i.start, end=i.end) for i in day.intervals]
            for day in self.work_schedule
            if day.intervals
        }

        return ScheduleConfig(
            work_intervals=work_intervals,
            breaks=[Break(start=b.start, end=b.end, reason=b.reason) for b in self.breaks],
            buffer_minutes=self.buffer_minutes,
            slot_step_minutes=self.slot_step_minutes,
            min_service_duration_minutes=self.min_service_duration_minutes,
            timezone=self.timezone or default_timezone,
            auto_buffer=self.auto_buffer,
            slot_compression=self.slot_compression,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite:///slotengine.db"
    log_level: str = "WARNING"
    timezone: str = "Europe/Moscow"
    practitioners: List[PractitionerConfig] = Field(default_factory=list)
    services: List[ServiceConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        resolve_timezone(value)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("practitioners")
    @classmethod
    def validate_practitioner_ids(cls, value: List[PractitionerConfig]) -> List[PractitionerConfig]:
        """Ensure practitioner ids are unique."""
        seen: set[str] = set()
        for practitioner in value:
            if practitioner.id in seen:
                raise ValueError(f"Duplicate practitioner id detected: {practitioner.id}")
            seen.add(practitioner.id)
        return value

    @field_validator("services")
    @classmethod
    def validate_service_ids(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        """Ensure service ids are unique."""
        seen: set[str] = set()
        for service in value:
            if service.id in seen:
                raise ValueError(f"Duplicate service id detected: {service.id}")
            seen.add(service.id)
        return value

    @model_validator(mode="after")
    def validate_schedules(self) -> "AppConfig":
        """Run the schedule invariants for every practitioner at load time."""
        for practitioner in self.practitioners:
            validate_schedule(practitioner.to_schedule(self.timezone))
        return self

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

    def find_practitioner(self, practitioner_id: str) -> PractitionerConfig | None:
        """Find a practitioner by id."""
        for practitioner in self.practitioners:
            if practitioner.id == practitioner_id:
                return practitioner
        return None

    def find_service(self, service_id: str) -> ServiceConfig | None:
        """Find a service by id."""
        for service in self.services:
            if service.id == service_id:
                return service
        return None

    def get_schedule(self, practitioner_id: str) -> ScheduleConfig | None:
        """Return the domain schedule of a practitioner, or None if unknown."""
        practitioner = self.find_practitioner(practitioner_id)
        if practitioner is None:
            return None
        return practitioner.to_schedule(self.timezone)

    def get_services(self, service_ids: Sequence[str]) -> List[ServiceInfo]:
        """Return metadata for the known services among ``service_ids``."""
        found: List[ServiceInfo] = []
        for service_id in service_ids:
            service = self.find_service(service_id)
            if service is not None:
                found.append(service.to_service_info())
        return found


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

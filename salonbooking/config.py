"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import BusinessHours, BusinessHoursConfig, Service, Stylist
from .domain.slot_calculator import SlotAvailabilityCalculator


def parse_clock(value: str) -> time:
    """Parse an 'HH:MM' string into a time object."""
    try:
        hour, minute = (int(part) for part in str(value).split(":"))
        return time(hour=hour, minute=minute)
    except ValueError as exc:
        raise ValueError(f"Expected HH:MM, got '{value}'") from exc


class DayHoursConfig(BaseModel):
    """Opening hours for one weekday."""
    open: str = "09:00"
    close: str = "19:00"

    @field_validator("open", "close")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        parse_clock(v)
        return v

    @model_validator(mode="after")
    def validate_order(self) -> "DayHoursConfig":
        """Ensure the salon opens before it closes."""
        if parse_clock(self.open) >= parse_clock(self.close):
            raise ValueError(f"close ({self.close}) must be later than open ({self.open})")
        return self

    def to_domain(self) -> BusinessHours:
        return BusinessHours(open=parse_clock(self.open), close=parse_clock(self.close))


def _default_week() -> Dict[int, Optional[DayHoursConfig]]:
    # Monday-Saturday 09:00-19:00, closed Sunday
    return {day: (None if day == 6 else DayHoursConfig()) for day in range(7)}


class ServiceConfig(BaseModel):
    id: str
    name: str
    duration_minutes: int
    price: Decimal = Decimal("0")
    category: str = ""
    description: str = ""

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value


class StylistConfig(BaseModel):
    id: str
    name: str


class SalonConfig(BaseModel):
    """Salon configuration: hours, services and stylists."""
    id: str
    name: str
    business_hours: Dict[int, Optional[DayHoursConfig]] = Field(default_factory=_default_week)
    services: List[ServiceConfig] = Field(default_factory=list)
    stylists: List[StylistConfig] = Field(default_factory=list)

    @field_validator("business_hours")
    @classmethod
    def validate_weekdays(cls, value: Dict[int, Optional[DayHoursConfig]]) -> Dict[int, Optional[DayHoursConfig]]:
        """Ensure weekdays are in valid range (0=Monday, 6=Sunday)."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"business_hours weekdays must be between 0 and 6, got {invalid_days}")
        return value

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "SalonConfig":
        """Ensure service and stylist ids are unique within the salon."""
        for label, items in (("service", self.services), ("stylist", self.stylists)):
            seen: set[str] = set()
            for item in items:
                if item.id in seen:
                    raise ValueError(f"Duplicate {label} id detected in salon {self.id}: {item.id}")
                seen.add(item.id)
        return self

    def hours_config(self) -> BusinessHoursConfig:
        return BusinessHoursConfig(
            hours={
                day: (hours.to_domain() if hours is not None else None)
                for day, hours in self.business_hours.items()
            }
        )

    def find_service(self, service_id: str) -> Service:
        for service in self.services:
            if service.id == service_id:
                return Service(
                    id=service.id,
                    name=service.name,
                    duration_minutes=service.duration_minutes,
                    price=service.price,
                    salon_id=self.id,
                    category=service.category,
                    description=service.description,
                )
        raise ValueError(f"Unknown service '{service_id}' for salon '{self.id}'")

    def find_stylist(self, stylist_id: str) -> Stylist:
        for stylist in self.stylists:
            if stylist.id == stylist_id:
                return Stylist(id=stylist.id, name=stylist.name, salon_id=self.id)
        raise ValueError(f"Unknown stylist '{stylist_id}' for salon '{self.id}'")


class BackendConfig(BaseModel):
    """Hosted backend connection."""
    url: str
    api_key: str


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    slot_granularity_minutes: int = 30
    reminder_window_days: int = 1
    history_capacity: int = 50
    database_url: str = "sqlite:///salonbooking.db"
    backend: Optional[BackendConfig] = None
    salons: List[SalonConfig] = Field(default_factory=list)

    @field_validator("slot_granularity_minutes", "history_capacity")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value

    @field_validator("reminder_window_days")
    @classmethod
    def validate_window(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"reminder_window_days must not be negative, got {value}")
        return value

    @field_validator("salons")
    @classmethod
    def validate_salons(cls, value: List[SalonConfig]) -> List[SalonConfig]:
        """Ensure salon ids are unique."""
        seen: set[str] = set()
        for salon in value:
            if salon.id in seen:
                raise ValueError(f"Duplicate salon id detected: {salon.id}")
            seen.add(salon.id)
        return value

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

    def find_salon(self, salon_id: str) -> SalonConfig:
        """Find a salon by id (case-insensitive)."""
        for salon in self.salons:
            if salon.id.lower() == salon_id.lower():
                return salon
        raise ValueError(
            f"Unknown salon: '{salon_id}'. Configured salons: "
            f"{', '.join(s.id for s in self.salons) or 'none'}"
        )

    def stylist_ids(self, salon_id: str) -> List[str]:
        return [stylist.id for stylist in self.find_salon(salon_id).stylists]

    def calculator_for(self, salon_id: str) -> SlotAvailabilityCalculator:
        """Build the slot calculator for a salon's hours and this config's grid."""
        return SlotAvailabilityCalculator(
            business_hours=self.find_salon(salon_id).hours_config(),
            slot_granularity_minutes=self.slot_granularity_minutes,
            timezone=self.timezone,
        )


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path

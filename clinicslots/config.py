"""
Configuration management using Pydantic models loaded from YAML.
"""

import os
from datetime import time
from pathlib import Path
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import ProfessionalNotFoundError, SpecialtyNotFoundError
from .domain.models import Professional, Specialty, WorkingHours
from .domain.scheduling import BUFFER_ENV_VAR, resolve_buffer_minutes


class DefaultsConfig(BaseModel):
    """Default working window and slot length."""
    duration_minutes: int = 30
    start_hour: int = 8
    end_hour: int = 17

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure slot duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @model_validator(mode="after")
    def validate_hours_order(self) -> "DefaultsConfig":
        """Ensure the configured window opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self

    def get_start_time(self) -> time:
        """Get start time as time object."""
        return time(hour=self.start_hour, minute=0)

    def get_end_time(self) -> time:
        """Get end time as time object."""
        return time(hour=self.end_hour, minute=0)


class SpecialtyConfig(BaseModel):
    """Specialty configuration."""
    id: str
    name: str
    default_slot_duration_minutes: int = 30

    @field_validator("default_slot_duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("default_slot_duration_minutes must be greater than zero")
        return value

    def to_domain(self) -> Specialty:
        return Specialty(
            id=self.id,
            name=self.name,
            default_slot_duration_minutes=self.default_slot_duration_minutes,
        )


class ProfessionalConfig(BaseModel):
    """Professional configuration."""
    id: str
    name: str
    specialty: str  # Specialty id
    slot_duration_minutes: Optional[int] = None
    active: bool = True

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_duration(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        return value

    def to_domain(self) -> Professional:
        return Professional(
            id=self.id,
            name=self.name,
            specialty_id=self.specialty,
            slot_duration_minutes=self.slot_duration_minutes,
            active=self.active,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "America/Bogota"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    exclude_days: List[int] = Field(default_factory=lambda: [6])  # Sunday
    specialties: List[SpecialtyConfig] = Field(default_factory=list)
    professionals: List[ProfessionalConfig] = Field(default_factory=list)
    bookings_file: Optional[Path] = None

    @field_validator("exclude_days")
    @classmethod
    def validate_exclude_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"exclude_days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    @field_validator("specialties")
    @classmethod
    def validate_specialties(cls, value: List[SpecialtyConfig]) -> List[SpecialtyConfig]:
        """Ensure specialty ids are unique."""
        seen: set[str] = set()
        for specialty in value:
            if specialty.id in seen:
                raise ValueError(f"Duplicate specialty id detected: {specialty.id}")
            seen.add(specialty.id)
        return value

    @field_validator("professionals")
    @classmethod
    def validate_professionals(cls, value: List[ProfessionalConfig]) -> List[ProfessionalConfig]:
        """Ensure professional ids are unique."""
        seen: set[str] = set()
        for professional in value:
            if professional.id in seen:
                raise ValueError(f"Duplicate professional id detected: {professional.id}")
            seen.add(professional.id)
        return value

    @model_validator(mode="after")
    def validate_specialty_references(self) -> "AppConfig":
        """Every professional must point at a configured specialty."""
        known = {specialty.id for specialty in self.specialties}
        for professional in self.professionals:
            if professional.specialty not in known:
                raise ValueError(
                    f"Professional '{professional.id}' references unknown specialty "
                    f"'{professional.specialty}'"
                )
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        A relative ``bookings_file`` is resolved against the config file's
        directory.

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

        config = cls(**data)
        if config.bookings_file and not config.bookings_file.is_absolute():
            config.bookings_file = config_path.parent / config.bookings_file
        return config

    def buffer_minutes(self, environ: Optional[Mapping[str, str]] = None) -> float:
        """
        Resolve the appointment buffer from APPOINTMENT_BUFFER_MINUTES.

        Args:
            environ: Environment mapping; defaults to os.environ
        """
        env = os.environ if environ is None else environ
        return resolve_buffer_minutes(env.get(BUFFER_ENV_VAR))

    def working_hours(self) -> WorkingHours:
        """Build the clinic's working hours."""
        return WorkingHours(
            start_time=self.defaults.get_start_time(),
            end_time=self.defaults.get_end_time(),
            exclude_weekdays=self.exclude_days,
            timezone=self.timezone,
        )

    def find_specialty(self, specialty_id: str) -> Specialty:
        """Find a specialty by id."""
        for specialty in self.specialties:
            if specialty.id == specialty_id:
                return specialty.to_domain()
        raise SpecialtyNotFoundError(f"Unknown specialty: '{specialty_id}'")

    def find_professional(self, identifier: str) -> Professional:
        """
        Resolve a professional by id or (case-insensitive) name.

        Raises:
            ProfessionalNotFoundError: If nothing matches
        """
        for professional in self.professionals:
            if professional.id == identifier:
                return professional.to_domain()

        for professional in self.professionals:
            if professional.name.lower() == identifier.lower():
                return professional.to_domain()

        raise ProfessionalNotFoundError(
            f"Unknown professional: '{identifier}'. "
            f"Use a configured id or name."
        )


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

"""Automation configuration."""

from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from pbs_core.clock.business_time import is_valid_offset


class AutomationConfig(BaseModel):
    """Configuration for the clock, rules engine and host service."""

    business_timezone: str = "Australia/Melbourne"
    questionnaire_check_hours_before: float = Field(ge=0, default=48)
    training_prep_offset: str = "-2 days"      # calendar offset from the session date
    protocol_send_offset: str = "1 day"
    database_path: str = ":memory:"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @field_validator("business_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("training_prep_offset", "protocol_send_offset")
    @classmethod
    def _valid_offset(cls, value: str) -> str:
        if not is_valid_offset(value):
            raise ValueError(
                f"Unrecognized offset {value!r}; expected e.g. '1 day', '48 hours', '-2 weeks'"
            )
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

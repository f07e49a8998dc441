"""Schedule definition DTO, the human-authored input to the compiler."""

from pydantic import BaseModel, Field, field_validator


class ScheduleDefinition(BaseModel):
    """One schedule as written in configuration."""

    name: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.\-]+$")
    recurrence: str = Field(..., min_length=1)
    task: str = Field(..., min_length=1)
    enabled: bool = True
    parameters: dict[str, str] = Field(default_factory=dict)

    @field_validator("recurrence", "task", mode="after")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

"""Pydantic models for application configuration settings."""

from pydantic import BaseModel, Field


class SettingsRead(BaseModel):
    site_name: str
    public_registration_disabled: bool
    default_passing_score: int
    certificate_code_prefix: str


class SettingsUpdate(BaseModel):
    site_name: str | None = None
    public_registration_disabled: bool | None = None
    default_passing_score: int | None = Field(default=None, ge=0, le=100)
    certificate_code_prefix: str | None = Field(
        default=None, min_length=1, max_length=8
    )

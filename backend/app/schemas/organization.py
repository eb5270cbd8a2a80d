"""Schemas for organizations, their members and certificate templates."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

OrgRole = Literal["owner", "member"]


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=2, max_length=100, pattern=r"^[a-z0-9-]+$")
    logo: str | None = None
    description: str | None = Field(default=None, max_length=1000)
    website: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    slug: str | None = Field(
        default=None, min_length=2, max_length=100, pattern=r"^[a-z0-9-]+$"
    )
    logo: str | None = None
    description: str | None = Field(default=None, max_length=1000)
    website: str | None = None


class OrganizationRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    slug: str
    logo: str | None = None
    description: str | None = None
    website: str | None = None
    created_at: datetime
    member_count: int = 0
    course_count: int = 0
    role: str | None = None


class MemberAdd(BaseModel):
    user_id: int
    role: OrgRole = "member"


class MemberRoleUpdate(BaseModel):
    role: OrgRole


class MemberRead(BaseModel):
    user_id: int
    name: str
    email: str
    role: str
    joined_at: datetime


class CertificateTemplateCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    template_config: dict[str, Any]
    is_default: bool = False


class CertificateTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    template_config: dict[str, Any] | None = None
    is_default: bool | None = None


class CertificateTemplateRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    organization_id: int
    name: str
    template_config: dict[str, Any]
    is_default: bool
    created_at: datetime


class CourseAnalytics(BaseModel):
    total_enrollments: int
    completed_count: int
    in_progress_count: int
    not_started_count: int
    certificate_count: int
    avg_progress: float
    completion_rate: float
    recent_enrollments: int
    total_lessons: int
    total_quizzes: int

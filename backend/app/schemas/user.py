# app/schemas/user.py

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

Role = Literal["student", "instructor", "admin"]


class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)


class UserResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    email: EmailStr
    role: str
    is_active: bool = True
    avatar: str | None = None
    bio: str | None = None
    created_at: datetime | None = None


class UserMeResponse(UserResponse):
    certificate_display_name: str | None = None
    permissions: list[str]


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    avatar: str | None = None
    bio: str | None = Field(default=None, max_length=500)
    certificate_display_name: str | None = Field(default=None, max_length=100)


class UserUpdate(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    role: Role | None = None
    is_active: bool | None = None
    password: str | None = Field(default=None, min_length=6)


class UserList(BaseModel):
    users: list[UserResponse]
    total: int


class UserStats(BaseModel):
    total_courses: int
    completed_courses: int
    in_progress_courses: int
    total_certificates: int
    total_watch_time: int

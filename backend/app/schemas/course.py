"""Schemas for the course catalog and course authoring."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Level = Literal["beginner", "intermediate", "advanced"]


class CourseCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    slug: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10)
    short_description: str = Field(min_length=10, max_length=300)
    thumbnail: str | None = None
    level: Level = "beginner"
    category: str
    tags: list[str] = []
    price: float = Field(default=0, ge=0)
    is_free: bool = True
    is_published: bool = False


class CourseUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    slug: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, min_length=10)
    short_description: str | None = Field(default=None, min_length=10, max_length=300)
    thumbnail: str | None = None
    level: Level | None = None
    category: str | None = None
    tags: list[str] | None = None
    price: float | None = Field(default=None, ge=0)
    is_free: bool | None = None
    is_published: bool | None = None


class InstructorSummary(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    avatar: str | None = None


class CourseRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    title: str
    slug: str
    description: str
    short_description: str
    thumbnail: str | None = None
    level: str
    category: str
    tags: list[str]
    price: float
    is_free: bool
    is_published: bool
    instructor_id: int
    organization_id: int | None = None
    created_at: datetime
    updated_at: datetime


class CourseSummary(CourseRead):
    instructor: InstructorSummary | None = None
    enrollment_count: int = 0
    module_count: int = 0


class CourseList(BaseModel):
    courses: list[CourseSummary]
    total: int


class NamedCount(BaseModel):
    name: str
    count: int


class ModuleCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = None
    order: int = Field(ge=1)


class ModuleUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = None
    order: int | None = Field(default=None, ge=1)


class LessonCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = None
    content: str | None = None
    video_url: str | None = None
    video_duration: int | None = Field(default=None, ge=0)
    order: int = Field(ge=1)


class LessonUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = None
    content: str | None = None
    video_url: str | None = None
    video_duration: int | None = Field(default=None, ge=0)
    order: int | None = Field(default=None, ge=1)


class LessonRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    module_id: int
    title: str
    description: str | None = None
    content: str | None = None
    video_url: str | None = None
    video_duration: int | None = None
    order: int


class QuizSummary(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    title: str
    passing_score: int
    time_limit: int | None = None


class ModuleRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    course_id: int
    title: str
    description: str | None = None
    order: int


class ModuleDetail(ModuleRead):
    lessons: list[LessonRead] = []
    quiz: QuizSummary | None = None


class CourseDetail(CourseRead):
    instructor: InstructorSummary | None = None
    modules: list[ModuleDetail] = []
    enrollment_count: int = 0


class ModuleOrderItem(BaseModel):
    id: int
    order: int = Field(ge=0)


class ReorderModules(BaseModel):
    modules: list[ModuleOrderItem]


class LessonOrderItem(BaseModel):
    id: int
    order: int = Field(ge=0)
    module_id: int | None = None


class ReorderLessons(BaseModel):
    lessons: list[LessonOrderItem]

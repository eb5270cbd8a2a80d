from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .course import CourseDetail, CourseSummary
from .certificate import CertificateRead

EnrollmentStatus = Literal["active", "completed", "expired"]


class ProgressUpdate(BaseModel):
    watched_seconds: int = Field(ge=0)
    completed: bool = False


class LessonProgressRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    enrollment_id: int
    lesson_id: int
    watched_seconds: int
    completed: bool
    completed_at: datetime | None = None


class EnrollmentRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    user_id: int
    course_id: int
    progress: float
    status: str
    enrolled_at: datetime
    completed_at: datetime | None = None


class EnrollmentWithCourse(EnrollmentRead):
    course: CourseSummary


class EnrollmentDetail(EnrollmentRead):
    course: CourseDetail
    lesson_progress: list[LessonProgressRead] = []


class EnrollmentCheck(BaseModel):
    is_enrolled: bool


class ProgressResult(BaseModel):
    lesson_progress: LessonProgressRead
    enrollment: EnrollmentRead
    certificate: CertificateRead | None = None


class LearnerSummary(BaseModel):
    id: int
    name: str
    email: str
    avatar: str | None = None


class CourseEnrollmentRead(EnrollmentRead):
    user: LearnerSummary
    lesson_progress: list[LessonProgressRead] = []
    certificate: CertificateRead | None = None


class EnrollmentStatusUpdate(BaseModel):
    status: EnrollmentStatus

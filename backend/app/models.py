"""Database models used by the learning platform.

The models are defined with SQLModel (built on SQLAlchemy and Pydantic)
and represent users, organizations, course content, quiz attempts,
enrollments and certificates.  Comments are kept concise to avoid
distracting from the field definitions.
"""

from typing import Optional, List
from datetime import datetime
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, UniqueConstraint


class UserPermissionLink(SQLModel, table=True):
    """Association table linking users and their granted permissions."""

    user_id: int = Field(foreign_key="user.id", primary_key=True)
    permission_id: int = Field(foreign_key="permission.id", primary_key=True)

    user: "User" = Relationship(back_populates="permission_links")
    permission: "Permission" = Relationship(back_populates="user_links")


class Permission(SQLModel, table=True):
    """Named permission that can be assigned to users."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    user_links: List["UserPermissionLink"] = Relationship(
        back_populates="permission"
    )
    users: List["User"] = Relationship(
        back_populates="permissions",
        link_model=UserPermissionLink,
        sa_relationship_kwargs={"overlaps": "user_links,permission,user"},
    )


class User(SQLModel, table=True):
    """Platform account: learner, instructor or administrator."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = "student"  # 'student', 'instructor', 'admin'
    is_active: bool = True
    avatar: Optional[str] = None
    bio: Optional[str] = None
    certificate_display_name: Optional[str] = None
    refresh_token_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    permission_links: List["UserPermissionLink"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"overlaps": "users"},
    )
    permissions: List[Permission] = Relationship(
        back_populates="users",
        link_model=UserPermissionLink,
        sa_relationship_kwargs={"overlaps": "permission_links,user"},
    )


class Organization(SQLModel, table=True):
    """Tenant that owns courses and certificate templates."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    logo: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    members: List["OrganizationMember"] = Relationship(
        back_populates="organization"
    )


class OrganizationMember(SQLModel, table=True):
    """Membership of a user in an organization."""

    organization_id: int = Field(foreign_key="organization.id", primary_key=True)
    user_id: int = Field(foreign_key="user.id", primary_key=True)
    role: str = "member"  # 'owner' or 'member'
    joined_at: datetime = Field(default_factory=datetime.utcnow)

    organization: Organization = Relationship(back_populates="members")
    user: User = Relationship()


class Course(SQLModel, table=True):
    """Catalog entry grouping modules of lessons."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(unique=True, index=True)
    description: str
    short_description: str
    thumbnail: Optional[str] = None
    level: str = "beginner"  # beginner, intermediate, advanced
    category: str
    tags: List[str] = Field(sa_column=Column(JSON), default_factory=list)
    price: float = 0.0
    is_free: bool = True
    is_published: bool = False
    instructor_id: int = Field(foreign_key="user.id")
    organization_id: Optional[int] = Field(
        default=None, foreign_key="organization.id"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    instructor: User = Relationship()
    modules: List["CourseModule"] = Relationship(
        back_populates="course",
        sa_relationship_kwargs={"order_by": "CourseModule.order"},
    )


class CourseModule(SQLModel, table=True):
    """Ordered group of lessons, optionally closed by a quiz."""
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str
    description: Optional[str] = None
    order: int

    course: Course = Relationship(back_populates="modules")
    lessons: List["Lesson"] = Relationship(
        back_populates="module",
        sa_relationship_kwargs={"order_by": "Lesson.order"},
    )
    quiz: Optional["Quiz"] = Relationship(
        back_populates="module",
        sa_relationship_kwargs={"uselist": False},
    )


class Lesson(SQLModel, table=True):
    """Single video or text lesson inside a module."""
    id: Optional[int] = Field(default=None, primary_key=True)
    module_id: int = Field(foreign_key="coursemodule.id", index=True)
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None
    video_duration: Optional[int] = None  # seconds
    order: int

    module: CourseModule = Relationship(back_populates="lessons")


class Quiz(SQLModel, table=True):
    """Graded assessment attached to exactly one module."""
    id: Optional[int] = Field(default=None, primary_key=True)
    module_id: int = Field(foreign_key="coursemodule.id", unique=True)
    title: str
    description: Optional[str] = None
    passing_score: int = 70  # percentage 0-100
    time_limit: Optional[int] = None  # minutes
    created_at: datetime = Field(default_factory=datetime.utcnow)

    module: CourseModule = Relationship(back_populates="quiz")
    questions: List["Question"] = Relationship(
        back_populates="quiz",
        sa_relationship_kwargs={"order_by": "Question.order"},
    )


class Question(SQLModel, table=True):
    """Quiz question; ``options`` is a list of ``{id, text, is_correct}``."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    text: str
    type: str  # single_choice, multiple_choice, true_false, short_answer
    options: List[dict] = Field(sa_column=Column(JSON), default_factory=list)
    explanation: Optional[str] = None
    points: int = 1
    order: int

    quiz: Quiz = Relationship(back_populates="questions")


class QuizAttempt(SQLModel, table=True):
    """Immutable record of one graded quiz submission."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    score: int
    max_score: int
    percentage: float
    passed: bool
    answers: List[dict] = Field(sa_column=Column(JSON), default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None


class Enrollment(SQLModel, table=True):
    """A learner's registration in a course."""

    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    progress: float = 0.0
    status: str = "active"  # active, completed, expired
    enrolled_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    course: Course = Relationship()
    lesson_progress: List["LessonProgress"] = Relationship(
        back_populates="enrollment"
    )


class LessonProgress(SQLModel, table=True):
    """Watched time and completion of one lesson within an enrollment."""

    __table_args__ = (UniqueConstraint("enrollment_id", "lesson_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    enrollment_id: int = Field(foreign_key="enrollment.id", index=True)
    lesson_id: int = Field(foreign_key="lesson.id", index=True)
    watched_seconds: int = 0
    completed: bool = False
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    enrollment: Enrollment = Relationship(back_populates="lesson_progress")


class CertificateTemplate(SQLModel, table=True):
    """Organization-specific certificate design."""
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organization.id", index=True)
    name: str
    template_config: dict = Field(sa_column=Column(JSON), default_factory=dict)
    is_default: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Certificate(SQLModel, table=True):
    """Verifiable record of course completion."""

    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    unique_code: str = Field(unique=True, index=True)
    user_id: int = Field(foreign_key="user.id")
    course_id: int = Field(foreign_key="course.id")
    enrollment_id: Optional[int] = Field(
        default=None, foreign_key="enrollment.id", unique=True
    )
    template_id: Optional[int] = Field(
        default=None, foreign_key="certificatetemplate.id"
    )
    issued_at: datetime = Field(default_factory=datetime.utcnow)
    pdf_url: Optional[str] = None

    user: User = Relationship()
    course: Course = Relationship()


class Settings(SQLModel, table=True):
    """Singleton table storing site‑wide configuration values."""
    id: Optional[int] = Field(default=1, primary_key=True)
    site_name: str = "Learning Platform"
    public_registration_disabled: bool = False
    default_passing_score: int = 70
    certificate_code_prefix: str = "4H"

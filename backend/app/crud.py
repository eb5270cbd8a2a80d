"""Asynchronous CRUD helpers for the application's data models.

Each function in this module encapsulates a specific database operation
using SQLModel and SQLAlchemy.  Centralizing the logic keeps route
handlers light and makes behavior easier to test.  Lookups return
``None`` when a row is missing; operations that enforce business rules
raise the errors from ``app.exceptions`` instead.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import func, or_, String, cast
from sqlmodel import select, delete, update

from app.models import (
    User,
    Permission,
    UserPermissionLink,
    Settings,
    Organization,
    OrganizationMember,
    Course,
    CourseModule,
    Lesson,
    Quiz,
    Question,
    QuizAttempt,
    Enrollment,
    LessonProgress,
    Certificate,
    CertificateTemplate,
)
from app.auth import get_password_hash
from app.acl import (
    get_default_permissions_for_role,
    ORG_ROLE_OWNER,
    ORG_ROLE_MEMBER,
    ROLE_ADMIN,
    ROLE_INSTRUCTOR,
)
from app.exceptions import (
    NotFoundError,
    ValidationError,
    ConflictError,
    PermissionDeniedError,
)
from app.scoring import grade_submission, lesson_completed, enrollment_progress
from app.seed_content import DEMO_COURSE, DEMO_INSTRUCTOR

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Permissions and settings
# ---------------------------------------------------------------------------


async def ensure_permissions_exist(db: AsyncSession, names: list[str]) -> None:
    """Ensure that a set of permission records exists in the database."""

    for name in names:
        result = await db.execute(
            select(Permission).where(Permission.name == name)
        )
        perm = result.scalar_one_or_none()
        if not perm:
            db.add(Permission(name=name))
    await db.commit()


async def assign_permissions_by_names(
    db: AsyncSession, user: User, names: list[str]
) -> None:
    """Assign named permissions to a user if not already granted."""
    for name in names:
        result = await db.execute(
            select(Permission).where(Permission.name == name)
        )
        perm = result.scalar_one_or_none()
        if perm:
            link_result = await db.execute(
                select(UserPermissionLink)
                    .where(
                        UserPermissionLink.user_id == user.id,
                        UserPermissionLink.permission_id == perm.id,
                    )
            )
            link = link_result.scalar_one_or_none()
            if not link:
                db.add(
                    UserPermissionLink(user_id=user.id, permission_id=perm.id)
                )
    await db.commit()


async def reset_permissions_for_role(db: AsyncSession, user: User) -> None:
    """Replace a user's permissions with the defaults of their role."""
    await db.execute(
        delete(UserPermissionLink).where(UserPermissionLink.user_id == user.id)
    )
    await db.commit()
    await assign_permissions_by_names(
        db, user, get_default_permissions_for_role(user.role)
    )


async def get_settings(db: AsyncSession, commit: bool = True) -> Settings:
    """Fetch the singleton settings record, creating it if necessary.

    Pass ``commit=False`` from inside a larger unit of work so a freshly
    created row is only flushed and commits with the caller's transaction.
    """
    result = await db.execute(select(Settings).where(Settings.id == 1))
    settings = result.scalar_one_or_none()
    if not settings:
        settings = Settings()
        db.add(settings)
        if commit:
            await db.commit()
            await db.refresh(settings)
        else:
            await db.flush()
    return settings


async def save_settings(db: AsyncSession, settings: Settings) -> Settings:
    """Persist settings changes and return the refreshed object."""

    db.add(settings)
    await db.commit()
    await db.refresh(settings)
    return settings


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def create_user(db: AsyncSession, user: User):
    """Create a new user, hashing the password and assigning defaults."""

    if not user.password_hash.startswith("$2b$"):
        user.password_hash = get_password_hash(user.password_hash)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    defaults = get_default_permissions_for_role(user.role)
    if defaults:
        await assign_permissions_by_names(db, user, defaults)
    return user


async def get_user_by_email(db: AsyncSession, email: str):
    """Return a user by email or ``None`` if not found."""
    result = await db.execute(
        select(User)
        .where(User.email == email)
        .options(selectinload(User.permissions))
    )
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    """Load a user by primary key."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.permissions))
    )
    return result.scalar_one_or_none()


async def count_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(User))
    return result.scalar()


async def list_users(
    db: AsyncSession, role: str | None = None, skip: int = 0, take: int = 50
) -> tuple[list[User], int]:
    """Return a page of users and the total matching count."""

    query = select(User)
    count_query = select(func.count()).select_from(User)
    if role:
        query = query.where(User.role == role)
        count_query = count_query.where(User.role == role)
    result = await db.execute(query.order_by(User.id).offset(skip).limit(take))
    total = await db.execute(count_query)
    return result.scalars().all(), total.scalar()


async def save_user(db: AsyncSession, user: User) -> User:
    """Persist changes to an existing user."""

    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user: User) -> None:
    """Remove a user together with their learning records."""

    result = await db.execute(
        select(func.count()).select_from(Course).where(Course.instructor_id == user.id)
    )
    if result.scalar():
        raise ConflictError(
            "User still instructs courses; reassign or delete them first",
            "user_has_courses",
        )
    enrollment_ids = select(Enrollment.id).where(Enrollment.user_id == user.id)
    await db.execute(
        delete(LessonProgress).where(LessonProgress.enrollment_id.in_(enrollment_ids))
    )
    await db.execute(delete(Certificate).where(Certificate.user_id == user.id))
    await db.execute(delete(Enrollment).where(Enrollment.user_id == user.id))
    await db.execute(delete(QuizAttempt).where(QuizAttempt.user_id == user.id))
    await db.execute(
        delete(OrganizationMember).where(OrganizationMember.user_id == user.id)
    )
    await db.execute(
        delete(UserPermissionLink).where(UserPermissionLink.user_id == user.id)
    )
    await db.execute(delete(User).where(User.id == user.id))
    await db.commit()


async def get_user_stats(db: AsyncSession, user_id: int) -> dict:
    """Summarize a learner's enrollments, certificates and watch time."""

    result = await db.execute(select(Enrollment).where(Enrollment.user_id == user_id))
    enrollments = result.scalars().all()
    certificates = await db.execute(
        select(func.count()).select_from(Certificate).where(Certificate.user_id == user_id)
    )
    watch_time = await db.execute(
        select(func.coalesce(func.sum(LessonProgress.watched_seconds), 0))
        .join(Enrollment, Enrollment.id == LessonProgress.enrollment_id)
        .where(Enrollment.user_id == user_id)
    )
    return {
        "total_courses": len(enrollments),
        "completed_courses": sum(1 for e in enrollments if e.status == "completed"),
        "in_progress_courses": sum(1 for e in enrollments if e.status == "active"),
        "total_certificates": certificates.scalar(),
        "total_watch_time": int(watch_time.scalar()),
    }


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------


async def _organization_counts(db: AsyncSession, org_ids: list[int]) -> dict:
    members = await db.execute(
        select(OrganizationMember.organization_id, func.count())
        .where(OrganizationMember.organization_id.in_(org_ids))
        .group_by(OrganizationMember.organization_id)
    )
    courses = await db.execute(
        select(Course.organization_id, func.count())
        .where(Course.organization_id.in_(org_ids))
        .group_by(Course.organization_id)
    )
    member_counts = dict(members.all())
    course_counts = dict(courses.all())
    return {
        org_id: (member_counts.get(org_id, 0), course_counts.get(org_id, 0))
        for org_id in org_ids
    }


async def organization_summaries(
    db: AsyncSession, organizations: list[Organization], roles: dict | None = None
) -> list[dict]:
    """Attach member/course counts (and optionally the caller's role)."""

    counts = await _organization_counts(db, [o.id for o in organizations])
    summaries = []
    for org in organizations:
        member_count, course_count = counts[org.id]
        data = org.model_dump()
        data.update(
            member_count=member_count,
            course_count=course_count,
            role=(roles or {}).get(org.id),
        )
        summaries.append(data)
    return summaries


async def get_organization(db: AsyncSession, org_id: int) -> Organization | None:
    result = await db.execute(select(Organization).where(Organization.id == org_id))
    return result.scalar_one_or_none()


async def get_organization_by_slug(db: AsyncSession, slug: str) -> Organization | None:
    result = await db.execute(select(Organization).where(Organization.slug == slug))
    return result.scalar_one_or_none()


async def _ensure_org_slug_free(
    db: AsyncSession, slug: str, exclude_id: int | None = None
) -> None:
    query = select(Organization).where(Organization.slug == slug)
    if exclude_id is not None:
        query = query.where(Organization.id != exclude_id)
    result = await db.execute(query)
    if result.scalar_one_or_none():
        raise ConflictError(
            "Organization with this slug already exists", "organization_slug_taken"
        )


async def create_organization(
    db: AsyncSession, owner_id: int, data: dict
) -> Organization:
    """Create an organization and make the creator its owner."""

    await _ensure_org_slug_free(db, data["slug"])
    org = Organization(**data)
    db.add(org)
    await db.flush()
    db.add(
        OrganizationMember(
            organization_id=org.id, user_id=owner_id, role=ORG_ROLE_OWNER
        )
    )
    await db.commit()
    await db.refresh(org)
    logger.info("Organization %s created by user %s", org.slug, owner_id)
    return org


async def list_organizations(db: AsyncSession) -> list[Organization]:
    result = await db.execute(
        select(Organization).order_by(Organization.created_at.desc())
    )
    return result.scalars().all()


async def list_user_organizations(
    db: AsyncSession, user_id: int
) -> list[tuple[Organization, str]]:
    """Return ``(organization, role)`` pairs for the user's memberships."""
    result = await db.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.name)
    )
    return result.all()


async def update_organization(
    db: AsyncSession, org: Organization, data: dict
) -> Organization:
    if data.get("slug"):
        await _ensure_org_slug_free(db, data["slug"], exclude_id=org.id)
    for field, value in data.items():
        setattr(org, field, value)
    db.add(org)
    await db.commit()
    await db.refresh(org)
    return org


async def delete_organization(db: AsyncSession, org: Organization) -> None:
    """Delete an organization; its courses stay in the catalog unowned."""
    await db.execute(
        update(Course)
        .where(Course.organization_id == org.id)
        .values(organization_id=None)
    )
    await db.execute(
        update(Certificate)
        .where(
            Certificate.template_id.in_(
                select(CertificateTemplate.id).where(
                    CertificateTemplate.organization_id == org.id
                )
            )
        )
        .values(template_id=None)
    )
    await db.execute(
        delete(CertificateTemplate).where(CertificateTemplate.organization_id == org.id)
    )
    await db.execute(
        delete(OrganizationMember).where(OrganizationMember.organization_id == org.id)
    )
    await db.execute(delete(Organization).where(Organization.id == org.id))
    await db.commit()


async def get_membership(
    db: AsyncSession, org_id: int, user_id: int
) -> OrganizationMember | None:
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def verify_member_access(
    db: AsyncSession,
    org_id: int,
    user_id: int,
    allowed_roles: list[str] | None = None,
) -> OrganizationMember:
    """Return the caller's membership or raise if access is not allowed."""

    member = await get_membership(db, org_id, user_id)
    if not member:
        raise PermissionDeniedError(
            "You are not a member of this organization", "organization_not_member"
        )
    if allowed_roles and member.role not in allowed_roles:
        raise PermissionDeniedError(
            "You do not have permission to perform this action",
            "organization_role_required",
        )
    return member


async def list_members(db: AsyncSession, org_id: int) -> list[tuple[OrganizationMember, User]]:
    result = await db.execute(
        select(OrganizationMember, User)
        .join(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == org_id)
        .order_by(OrganizationMember.joined_at)
    )
    return result.all()


async def _count_owners(db: AsyncSession, org_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(OrganizationMember)
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.role == ORG_ROLE_OWNER,
        )
    )
    return result.scalar()


async def add_member(
    db: AsyncSession, org_id: int, user_id: int, role: str = ORG_ROLE_MEMBER
) -> OrganizationMember:
    if not await get_user(db, user_id):
        raise NotFoundError("User not found", "user_not_found")
    if await get_membership(db, org_id, user_id):
        raise ConflictError(
            "User is already a member of this organization", "organization_duplicate_member"
        )
    member = OrganizationMember(organization_id=org_id, user_id=user_id, role=role)
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member


async def remove_member(db: AsyncSession, org_id: int, member_id: int) -> None:
    member = await get_membership(db, org_id, member_id)
    if not member:
        raise NotFoundError("Member not found", "member_not_found")
    if member.role == ORG_ROLE_OWNER and await _count_owners(db, org_id) <= 1:
        raise PermissionDeniedError(
            "Cannot remove the last owner. Transfer ownership first.",
            "organization_last_owner",
        )
    await db.delete(member)
    await db.commit()


async def update_member_role(
    db: AsyncSession, org_id: int, member_id: int, role: str
) -> OrganizationMember:
    member = await get_membership(db, org_id, member_id)
    if not member:
        raise NotFoundError("Member not found", "member_not_found")
    if (
        member.role == ORG_ROLE_OWNER
        and role != ORG_ROLE_OWNER
        and await _count_owners(db, org_id) <= 1
    ):
        raise PermissionDeniedError(
            "Cannot demote the last owner. Promote another member first.",
            "organization_last_owner",
        )
    member.role = role
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member


# ---------------------------------------------------------------------------
# Courses, modules and lessons
# ---------------------------------------------------------------------------

COURSE_SORT_FIELDS = {
    "created_at": Course.created_at,
    "title": Course.title,
    "price": Course.price,
}


async def _ensure_course_slug_free(
    db: AsyncSession, slug: str, exclude_id: int | None = None
) -> None:
    query = select(Course).where(Course.slug == slug)
    if exclude_id is not None:
        query = query.where(Course.id != exclude_id)
    result = await db.execute(query)
    if result.scalar_one_or_none():
        raise ConflictError("Course with this slug already exists", "course_slug_taken")


async def create_course(
    db: AsyncSession,
    instructor_id: int,
    data: dict,
    organization_id: int | None = None,
) -> Course:
    await _ensure_course_slug_free(db, data["slug"])
    course = Course(
        **data, instructor_id=instructor_id, organization_id=organization_id
    )
    db.add(course)
    await db.commit()
    await db.refresh(course)
    logger.info("Course %s created by user %s", course.slug, instructor_id)
    return course


async def course_summaries(db: AsyncSession, courses: list[Course]) -> list[dict]:
    """Attach instructor, enrollment and module counts to courses."""

    ids = [c.id for c in courses]
    enrollments = await db.execute(
        select(Enrollment.course_id, func.count())
        .where(Enrollment.course_id.in_(ids))
        .group_by(Enrollment.course_id)
    )
    modules = await db.execute(
        select(CourseModule.course_id, func.count())
        .where(CourseModule.course_id.in_(ids))
        .group_by(CourseModule.course_id)
    )
    enrollment_counts = dict(enrollments.all())
    module_counts = dict(modules.all())
    summaries = []
    for course in courses:
        data = course.model_dump()
        instructor = course.instructor
        data.update(
            instructor={
                "id": instructor.id,
                "name": instructor.name,
                "avatar": instructor.avatar,
            },
            enrollment_count=enrollment_counts.get(course.id, 0),
            module_count=module_counts.get(course.id, 0),
        )
        summaries.append(data)
    return summaries


async def list_courses(
    db: AsyncSession,
    search: str | None = None,
    category: str | None = None,
    level: str | None = None,
    tag: str | None = None,
    is_free: bool | None = None,
    is_published: bool | None = True,
    organization_id: int | None = None,
    instructor_id: int | None = None,
    skip: int = 0,
    take: int = 12,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Course], int]:
    """Filter and page the catalog; returns the page and the total count."""

    filters = []
    if is_published is not None:
        filters.append(Course.is_published == is_published)
    if organization_id is not None:
        filters.append(Course.organization_id == organization_id)
    if instructor_id is not None:
        filters.append(Course.instructor_id == instructor_id)
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(Course.title.ilike(pattern), Course.description.ilike(pattern))
        )
    if category:
        filters.append(Course.category == category)
    if level:
        filters.append(Course.level == level)
    if tag:
        filters.append(cast(Course.tags, String).like(f'%"{tag}"%'))
    if is_free is not None:
        filters.append(Course.is_free == is_free)

    column = COURSE_SORT_FIELDS.get(sort_by, Course.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    result = await db.execute(
        select(Course)
        .where(*filters)
        .options(selectinload(Course.instructor))
        .order_by(ordering, Course.id)
        .offset(skip)
        .limit(take)
    )
    total = await db.execute(select(func.count()).select_from(Course).where(*filters))
    return result.scalars().all(), total.scalar()


async def get_categories(db: AsyncSession) -> list[dict]:
    result = await db.execute(
        select(Course.category, func.count())
        .where(Course.is_published == True)  # noqa: E712
        .group_by(Course.category)
        .order_by(Course.category)
    )
    return [{"name": name, "count": count} for name, count in result.all()]


async def get_tags(db: AsyncSession) -> list[dict]:
    result = await db.execute(
        select(Course.tags).where(Course.is_published == True)  # noqa: E712
    )
    counts: dict[str, int] = {}
    for tags in result.scalars().all():
        for tag in tags or []:
            counts[tag] = counts.get(tag, 0) + 1
    return [{"name": name, "count": count} for name, count in sorted(counts.items())]


def _course_tree_options():
    return (
        selectinload(Course.instructor),
        selectinload(Course.modules).selectinload(CourseModule.lessons),
        selectinload(Course.modules).selectinload(CourseModule.quiz),
    )


async def get_course(db: AsyncSession, course_id: int, with_tree: bool = False) -> Course | None:
    query = select(Course).where(Course.id == course_id)
    if with_tree:
        query = query.options(*_course_tree_options())
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_course_by_slug(db: AsyncSession, slug: str) -> Course | None:
    result = await db.execute(
        select(Course).where(Course.slug == slug).options(*_course_tree_options())
    )
    return result.scalar_one_or_none()


async def count_course_enrollments(db: AsyncSession, course_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Enrollment).where(Enrollment.course_id == course_id)
    )
    return result.scalar()


async def update_course(db: AsyncSession, course: Course, data: dict) -> Course:
    if data.get("slug"):
        await _ensure_course_slug_free(db, data["slug"], exclude_id=course.id)
    for field, value in data.items():
        setattr(course, field, value)
    course.updated_at = datetime.utcnow()
    db.add(course)
    await db.commit()
    await db.refresh(course)
    return course


async def _delete_lessons(db: AsyncSession, lesson_ids) -> None:
    await db.execute(
        delete(LessonProgress).where(LessonProgress.lesson_id.in_(lesson_ids))
    )
    await db.execute(delete(Lesson).where(Lesson.id.in_(lesson_ids)))


async def _delete_quizzes(db: AsyncSession, quiz_ids) -> None:
    await db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id.in_(quiz_ids)))
    await db.execute(delete(Question).where(Question.quiz_id.in_(quiz_ids)))
    await db.execute(delete(Quiz).where(Quiz.id.in_(quiz_ids)))


async def _delete_modules(db: AsyncSession, module_ids) -> None:
    await _delete_quizzes(db, select(Quiz.id).where(Quiz.module_id.in_(module_ids)))
    await _delete_lessons(db, select(Lesson.id).where(Lesson.module_id.in_(module_ids)))
    await db.execute(delete(CourseModule).where(CourseModule.id.in_(module_ids)))


async def delete_course(db: AsyncSession, course: Course) -> None:
    """Remove a course with its content, enrollments and certificates."""
    module_ids = [
        m for m in (
            await db.execute(select(CourseModule.id).where(CourseModule.course_id == course.id))
        ).scalars().all()
    ]
    await _delete_modules(db, module_ids)
    enrollment_ids = select(Enrollment.id).where(Enrollment.course_id == course.id)
    await db.execute(
        delete(LessonProgress).where(LessonProgress.enrollment_id.in_(enrollment_ids))
    )
    await db.execute(delete(Certificate).where(Certificate.course_id == course.id))
    await db.execute(delete(Enrollment).where(Enrollment.course_id == course.id))
    await db.execute(delete(Course).where(Course.id == course.id))
    await db.commit()
    logger.info("Course %s deleted", course.slug)


async def can_author_course(db: AsyncSession, user: User, course: Course) -> bool:
    """Admins, the course instructor and organization members may edit."""
    if user.role == ROLE_ADMIN or course.instructor_id == user.id:
        return True
    if course.organization_id is not None:
        return await get_membership(db, course.organization_id, user.id) is not None
    return False


async def get_module(db: AsyncSession, module_id: int) -> CourseModule | None:
    result = await db.execute(select(CourseModule).where(CourseModule.id == module_id))
    return result.scalar_one_or_none()


async def create_module(db: AsyncSession, course_id: int, data: dict) -> CourseModule:
    module = CourseModule(**data, course_id=course_id)
    db.add(module)
    await db.commit()
    await db.refresh(module)
    return module


async def update_module(db: AsyncSession, module: CourseModule, data: dict) -> CourseModule:
    for field, value in data.items():
        setattr(module, field, value)
    db.add(module)
    await db.commit()
    await db.refresh(module)
    return module


async def delete_module(db: AsyncSession, module: CourseModule) -> None:
    await _delete_modules(db, [module.id])
    await db.commit()


async def reorder_modules(db: AsyncSession, course_id: int, items: list[dict]) -> None:
    result = await db.execute(
        select(CourseModule).where(CourseModule.course_id == course_id)
    )
    modules = {m.id: m for m in result.scalars().all()}
    for item in items:
        module = modules.get(item["id"])
        if module is None:
            raise ValidationError(
                f"Module {item['id']} does not belong to this course", "module_not_in_course"
            )
        module.order = item["order"]
        db.add(module)
    await db.commit()


async def get_lesson(db: AsyncSession, lesson_id: int) -> Lesson | None:
    result = await db.execute(
        select(Lesson).where(Lesson.id == lesson_id).options(selectinload(Lesson.module))
    )
    return result.scalar_one_or_none()


async def get_course_lesson_ids(db: AsyncSession, course_id: int) -> list[int]:
    result = await db.execute(
        select(Lesson.id)
        .join(CourseModule, CourseModule.id == Lesson.module_id)
        .where(CourseModule.course_id == course_id)
    )
    return result.scalars().all()


async def create_lesson(db: AsyncSession, module_id: int, data: dict) -> Lesson:
    """Create a lesson and start tracking it for existing enrollments."""
    lesson = Lesson(**data, module_id=module_id)
    db.add(lesson)
    await db.flush()
    module = await get_module(db, module_id)
    result = await db.execute(
        select(Enrollment.id).where(Enrollment.course_id == module.course_id)
    )
    for enrollment_id in result.scalars().all():
        db.add(LessonProgress(enrollment_id=enrollment_id, lesson_id=lesson.id))
    await db.commit()
    await db.refresh(lesson)
    return lesson


async def update_lesson(db: AsyncSession, lesson: Lesson, data: dict) -> Lesson:
    for field, value in data.items():
        setattr(lesson, field, value)
    db.add(lesson)
    await db.commit()
    await db.refresh(lesson)
    return lesson


async def delete_lesson(db: AsyncSession, lesson: Lesson) -> None:
    await _delete_lessons(db, [lesson.id])
    await db.commit()


async def reorder_lessons(db: AsyncSession, course_id: int, items: list[dict]) -> None:
    """Reorder lessons, optionally moving them to another module of the course."""
    result = await db.execute(
        select(CourseModule.id).where(CourseModule.course_id == course_id)
    )
    module_ids = set(result.scalars().all())
    result = await db.execute(select(Lesson).where(Lesson.module_id.in_(module_ids)))
    lessons = {lesson.id: lesson for lesson in result.scalars().all()}
    for item in items:
        lesson = lessons.get(item["id"])
        if lesson is None:
            raise ValidationError(
                f"Lesson {item['id']} does not belong to this course", "lesson_not_in_course"
            )
        target = item.get("module_id")
        if target is not None:
            if target not in module_ids:
                raise ValidationError(
                    f"Module {target} does not belong to this course", "module_not_in_course"
                )
            lesson.module_id = target
        lesson.order = item["order"]
        db.add(lesson)
    await db.commit()


# ---------------------------------------------------------------------------
# Quizzes and questions
# ---------------------------------------------------------------------------


async def create_quiz(db: AsyncSession, module_id: int, data: dict) -> Quiz:
    """Attach a quiz to a module; a module holds at most one quiz."""

    if not await get_module(db, module_id):
        raise NotFoundError("Module not found", "module_not_found")
    if await get_quiz_by_module(db, module_id):
        raise ConflictError("Module already has a quiz", "quiz_exists")
    if data.get("passing_score") is None:
        settings = await get_settings(db)
        data["passing_score"] = settings.default_passing_score
    quiz = Quiz(**data, module_id=module_id)
    db.add(quiz)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Module already has a quiz", "quiz_exists")
    await db.refresh(quiz)
    return quiz


async def get_quiz(db: AsyncSession, quiz_id: int, with_questions: bool = False) -> Quiz | None:
    query = select(Quiz).where(Quiz.id == quiz_id)
    if with_questions:
        query = query.options(selectinload(Quiz.questions))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_quiz_by_module(
    db: AsyncSession, module_id: int, with_questions: bool = False
) -> Quiz | None:
    query = select(Quiz).where(Quiz.module_id == module_id)
    if with_questions:
        query = query.options(selectinload(Quiz.questions))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_quiz_course(db: AsyncSession, quiz: Quiz) -> Course:
    result = await db.execute(
        select(Course)
        .join(CourseModule, CourseModule.course_id == Course.id)
        .where(CourseModule.id == quiz.module_id)
    )
    return result.scalar_one()


async def update_quiz(db: AsyncSession, quiz: Quiz, data: dict) -> Quiz:
    for field, value in data.items():
        setattr(quiz, field, value)
    db.add(quiz)
    await db.commit()
    await db.refresh(quiz)
    return quiz


async def delete_quiz(db: AsyncSession, quiz: Quiz) -> None:
    await _delete_quizzes(db, [quiz.id])
    await db.commit()


async def create_question(db: AsyncSession, quiz_id: int, data: dict) -> Question:
    question = Question(**data, quiz_id=quiz_id)
    db.add(question)
    await db.commit()
    await db.refresh(question)
    return question


async def get_question(db: AsyncSession, question_id: int) -> Question | None:
    result = await db.execute(select(Question).where(Question.id == question_id))
    return result.scalar_one_or_none()


async def update_question(db: AsyncSession, question: Question, data: dict) -> Question:
    for field, value in data.items():
        setattr(question, field, value)
    db.add(question)
    await db.commit()
    await db.refresh(question)
    return question


async def delete_question(db: AsyncSession, question: Question) -> None:
    await db.delete(question)
    await db.commit()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


async def submit_quiz(
    db: AsyncSession,
    user_id: int,
    quiz_id: int,
    answers: list,
    started_at: datetime | None = None,
) -> tuple[QuizAttempt, Quiz]:
    """Grade a submission from the stored questions and record the attempt.

    The score is always recomputed from the current question definitions.
    Nothing is written when the submission is rejected.
    """
    quiz = await get_quiz(db, quiz_id, with_questions=True)
    if not quiz:
        raise NotFoundError("Quiz not found", "quiz_not_found")

    graded = grade_submission(quiz.questions, quiz.passing_score, answers)

    completed_at = datetime.utcnow()
    started = completed_at
    if started_at is not None:
        started = min(_naive_utc(started_at), completed_at)
    attempt = QuizAttempt(
        user_id=user_id,
        quiz_id=quiz.id,
        score=graded.score,
        max_score=graded.max_score,
        percentage=graded.percentage,
        passed=graded.passed,
        answers=[a.to_dict() for a in graded.answers],
        started_at=started,
        completed_at=completed_at,
    )
    db.add(attempt)
    await db.commit()
    await db.refresh(attempt)
    logger.info(
        "Quiz %s attempt %s by user %s scored %s/%s (%.2f%%, passed=%s)",
        quiz.id,
        attempt.id,
        user_id,
        attempt.score,
        attempt.max_score,
        attempt.percentage,
        attempt.passed,
    )
    return attempt, quiz


async def list_attempts(db: AsyncSession, user_id: int, quiz_id: int) -> list[QuizAttempt]:
    result = await db.execute(
        select(QuizAttempt)
        .where(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
        .order_by(QuizAttempt.started_at.desc(), QuizAttempt.id.desc())
    )
    return result.scalars().all()


async def get_best_attempt(db: AsyncSession, user_id: int, quiz_id: int) -> QuizAttempt | None:
    """Highest percentage wins; among equals the earliest attempt is kept."""
    result = await db.execute(
        select(QuizAttempt)
        .where(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
        .order_by(QuizAttempt.percentage.desc(), QuizAttempt.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Enrollments and lesson progress
# ---------------------------------------------------------------------------


async def enroll(db: AsyncSession, user_id: int, course_id: int) -> Enrollment:
    """Enroll a learner and create a progress row for every lesson."""

    course = await get_course(db, course_id)
    if not course:
        raise NotFoundError("Course not found", "course_not_found")
    if not course.is_published:
        raise ValidationError("Course is not published", "course_not_published")
    if await get_enrollment_for_course(db, user_id, course_id):
        raise ConflictError("Already enrolled in this course", "already_enrolled")

    enrollment = Enrollment(user_id=user_id, course_id=course_id)
    db.add(enrollment)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Already enrolled in this course", "already_enrolled")
    for lesson_id in await get_course_lesson_ids(db, course_id):
        db.add(LessonProgress(enrollment_id=enrollment.id, lesson_id=lesson_id))
    await db.commit()
    await db.refresh(enrollment)
    logger.info("User %s enrolled in course %s", user_id, course_id)
    return enrollment


async def get_enrollment(db: AsyncSession, enrollment_id: int) -> Enrollment | None:
    result = await db.execute(select(Enrollment).where(Enrollment.id == enrollment_id))
    return result.scalar_one_or_none()


async def get_enrollment_for_course(
    db: AsyncSession, user_id: int, course_id: int, with_details: bool = False
) -> Enrollment | None:
    query = select(Enrollment).where(
        Enrollment.user_id == user_id, Enrollment.course_id == course_id
    )
    if with_details:
        query = query.options(
            selectinload(Enrollment.lesson_progress),
            selectinload(Enrollment.course).selectinload(Course.instructor),
            selectinload(Enrollment.course)
            .selectinload(Course.modules)
            .selectinload(CourseModule.lessons),
            selectinload(Enrollment.course)
            .selectinload(Course.modules)
            .selectinload(CourseModule.quiz),
        )
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_user_enrollments(db: AsyncSession, user_id: int) -> list[Enrollment]:
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.user_id == user_id)
        .options(selectinload(Enrollment.course).selectinload(Course.instructor))
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    )
    return result.scalars().all()


async def unenroll(db: AsyncSession, enrollment: Enrollment) -> None:
    await db.execute(
        delete(LessonProgress).where(LessonProgress.enrollment_id == enrollment.id)
    )
    await db.execute(
        update(Certificate)
        .where(Certificate.enrollment_id == enrollment.id)
        .values(enrollment_id=None)
    )
    await db.execute(delete(Enrollment).where(Enrollment.id == enrollment.id))
    await db.commit()


async def get_lesson_progress(
    db: AsyncSession, enrollment_id: int, lesson_id: int
) -> LessonProgress | None:
    result = await db.execute(
        select(LessonProgress).where(
            LessonProgress.enrollment_id == enrollment_id,
            LessonProgress.lesson_id == lesson_id,
        )
    )
    return result.scalar_one_or_none()


async def record_lesson_progress(
    db: AsyncSession,
    user_id: int,
    enrollment_id: int,
    lesson_id: int,
    watched_seconds: int,
    client_completed: bool = False,
) -> tuple[LessonProgress, Enrollment, Certificate | None]:
    """Apply a watched-seconds ping and roll it up into the enrollment.

    Runs as one transaction with the enrollment row locked, so two pings
    racing for the same enrollment cannot lose an update.  Watched time and
    completion only ever move forward, which makes repeated pings harmless.
    """
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.id == enrollment_id, Enrollment.user_id == user_id)
        .with_for_update()
    )
    enrollment = result.scalar_one_or_none()
    if not enrollment:
        raise NotFoundError("Enrollment not found", "enrollment_not_found")
    if enrollment.status == "expired":
        raise ValidationError("Enrollment has expired", "enrollment_expired")

    lesson_ids = await get_course_lesson_ids(db, enrollment.course_id)
    if lesson_id not in lesson_ids:
        raise NotFoundError("Lesson not found in this course", "lesson_not_found")
    lesson = await db.get(Lesson, lesson_id)

    progress = await get_lesson_progress(db, enrollment_id, lesson_id)
    if progress is None:
        progress = LessonProgress(enrollment_id=enrollment_id, lesson_id=lesson_id)
    now = datetime.utcnow()
    was_completed = progress.completed
    progress.watched_seconds = max(progress.watched_seconds or 0, watched_seconds)
    progress.completed = lesson_completed(
        was_completed, progress.watched_seconds, lesson.video_duration, client_completed
    )
    if progress.completed and not was_completed:
        progress.completed_at = now
        logger.info("Enrollment %s completed lesson %s", enrollment_id, lesson_id)
    progress.updated_at = now
    db.add(progress)
    await db.flush()

    completed = await db.execute(
        select(func.count())
        .select_from(LessonProgress)
        .where(
            LessonProgress.enrollment_id == enrollment_id,
            LessonProgress.completed == True,  # noqa: E712
            LessonProgress.lesson_id.in_(lesson_ids),
        )
    )
    enrollment.progress = enrollment_progress(completed.scalar(), len(lesson_ids))
    if enrollment.progress >= 100 and enrollment.status != "completed":
        enrollment.status = "completed"
        if enrollment.completed_at is None:
            enrollment.completed_at = now
        logger.info(
            "User %s completed course %s", enrollment.user_id, enrollment.course_id
        )
    db.add(enrollment)

    certificate = None
    if enrollment.status == "completed":
        certificate = await _issue_certificate(db, enrollment)

    await db.commit()
    await db.refresh(progress)
    await db.refresh(enrollment)
    return progress, enrollment, certificate


async def set_enrollment_status(
    db: AsyncSession, enrollment: Enrollment, status: str
) -> Enrollment:
    enrollment.status = status
    if status == "completed" and enrollment.completed_at is None:
        enrollment.completed_at = datetime.utcnow()
    db.add(enrollment)
    await db.commit()
    await db.refresh(enrollment)
    return enrollment


async def list_course_enrollments(db: AsyncSession, course_id: int) -> list[dict]:
    """Learners of a course with their lesson progress and certificate."""

    result = await db.execute(
        select(Enrollment, User)
        .join(User, User.id == Enrollment.user_id)
        .where(Enrollment.course_id == course_id)
        .options(selectinload(Enrollment.lesson_progress))
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    )
    rows = result.all()
    certs = await db.execute(select(Certificate).where(Certificate.course_id == course_id))
    by_user = {c.user_id: c for c in certs.scalars().all()}
    enrollments = []
    for enrollment, user in rows:
        data = enrollment.model_dump()
        data.update(
            user={"id": user.id, "name": user.name, "email": user.email, "avatar": user.avatar},
            lesson_progress=enrollment.lesson_progress,
            certificate=by_user.get(user.id),
        )
        enrollments.append(data)
    return enrollments


async def get_course_analytics(db: AsyncSession, course: Course) -> dict:
    result = await db.execute(
        select(func.count())
        .select_from(Lesson)
        .join(CourseModule, CourseModule.id == Lesson.module_id)
        .where(CourseModule.course_id == course.id)
    )
    total_lessons = result.scalar()
    result = await db.execute(
        select(func.count())
        .select_from(Quiz)
        .join(CourseModule, CourseModule.id == Quiz.module_id)
        .where(CourseModule.course_id == course.id)
    )
    total_quizzes = result.scalar()

    result = await db.execute(select(Enrollment).where(Enrollment.course_id == course.id))
    enrollments = result.scalars().all()
    total = len(enrollments)
    completed = sum(1 for e in enrollments if e.status == "completed")
    in_progress = sum(1 for e in enrollments if e.status == "active" and e.progress > 0)
    not_started = sum(1 for e in enrollments if e.status == "active" and e.progress == 0)
    avg_progress = sum(e.progress for e in enrollments) / total if total else 0
    completion_rate = completed / total * 100 if total else 0
    cutoff = datetime.utcnow() - timedelta(days=30)
    recent = sum(1 for e in enrollments if e.enrolled_at >= cutoff)

    result = await db.execute(
        select(func.count()).select_from(Certificate).where(Certificate.course_id == course.id)
    )
    return {
        "total_enrollments": total,
        "completed_count": completed,
        "in_progress_count": in_progress,
        "not_started_count": not_started,
        "certificate_count": result.scalar(),
        "avg_progress": round(avg_progress, 2),
        "completion_rate": round(completion_rate, 2),
        "recent_enrollments": recent,
        "total_lessons": total_lessons,
        "total_quizzes": total_quizzes,
    }


# ---------------------------------------------------------------------------
# Certificates and templates
# ---------------------------------------------------------------------------


async def _generate_certificate_code(db: AsyncSession, prefix: str) -> str:
    while True:
        code = f"{prefix}{uuid.uuid4().hex[:12].upper()}"
        if not await get_certificate_by_code(db, code):
            return code


async def _issue_certificate(db: AsyncSession, enrollment: Enrollment) -> Certificate:
    """Return the enrollment's certificate, creating it on first call.

    Does not commit; callers own the transaction.
    """
    result = await db.execute(
        select(Certificate).where(
            or_(
                Certificate.enrollment_id == enrollment.id,
                (Certificate.user_id == enrollment.user_id)
                & (Certificate.course_id == enrollment.course_id),
            )
        )
    )
    existing = result.scalars().first()
    if existing:
        return existing

    settings = await get_settings(db, commit=False)
    course = await get_course(db, enrollment.course_id)
    template = None
    if course.organization_id is not None:
        template = await get_default_template(db, course.organization_id)
    certificate = Certificate(
        unique_code=await _generate_certificate_code(db, settings.certificate_code_prefix),
        user_id=enrollment.user_id,
        course_id=enrollment.course_id,
        enrollment_id=enrollment.id,
        template_id=template.id if template else None,
    )
    db.add(certificate)
    await db.flush()
    logger.info(
        "Issued certificate %s to user %s for course %s",
        certificate.unique_code,
        enrollment.user_id,
        enrollment.course_id,
    )
    return certificate


async def issue_certificate_if_eligible(
    db: AsyncSession, enrollment_id: int
) -> Certificate | None:
    """Issue the certificate for a completed enrollment.

    Calling this again for a certified enrollment returns the existing
    certificate; an enrollment that is not completed yields ``None``.
    """
    enrollment = await get_enrollment(db, enrollment_id)
    if not enrollment:
        raise NotFoundError("Enrollment not found", "enrollment_not_found")
    if enrollment.status != "completed":
        return None
    certificate = await _issue_certificate(db, enrollment)
    await db.commit()
    await db.refresh(certificate)
    return certificate


async def list_user_certificates(db: AsyncSession, user_id: int) -> list[Certificate]:
    result = await db.execute(
        select(Certificate)
        .where(Certificate.user_id == user_id)
        .order_by(Certificate.issued_at.desc(), Certificate.id.desc())
    )
    return result.scalars().all()


async def get_certificate(db: AsyncSession, certificate_id: int) -> Certificate | None:
    result = await db.execute(select(Certificate).where(Certificate.id == certificate_id))
    return result.scalar_one_or_none()


async def get_certificate_by_code(db: AsyncSession, code: str) -> Certificate | None:
    result = await db.execute(
        select(Certificate)
        .where(Certificate.unique_code == code)
        .options(
            selectinload(Certificate.user),
            selectinload(Certificate.course).selectinload(Course.instructor),
        )
    )
    return result.scalar_one_or_none()


async def verify_certificate(db: AsyncSession, code: str) -> dict:
    certificate = await get_certificate_by_code(db, code)
    if not certificate:
        return {"valid": False, "certificate": None}
    user = certificate.user
    course = certificate.course
    return {
        "valid": True,
        "certificate": {
            "unique_code": certificate.unique_code,
            "recipient_name": user.certificate_display_name or user.name,
            "course_name": course.title,
            "course_level": course.level,
            "issued_at": certificate.issued_at,
            "instructor_name": course.instructor.name,
        },
    }


async def save_certificate(db: AsyncSession, certificate: Certificate) -> Certificate:
    db.add(certificate)
    await db.commit()
    await db.refresh(certificate)
    return certificate


async def delete_certificate(db: AsyncSession, certificate: Certificate) -> None:
    await db.delete(certificate)
    await db.commit()


async def _clear_default_template(db: AsyncSession, org_id: int) -> None:
    await db.execute(
        update(CertificateTemplate)
        .where(
            CertificateTemplate.organization_id == org_id,
            CertificateTemplate.is_default == True,  # noqa: E712
        )
        .values(is_default=False)
    )


async def create_template(db: AsyncSession, org_id: int, data: dict) -> CertificateTemplate:
    if data.get("is_default"):
        await _clear_default_template(db, org_id)
    template = CertificateTemplate(**data, organization_id=org_id)
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return template


async def list_templates(db: AsyncSession, org_id: int) -> list[CertificateTemplate]:
    result = await db.execute(
        select(CertificateTemplate)
        .where(CertificateTemplate.organization_id == org_id)
        .order_by(
            CertificateTemplate.is_default.desc(),
            CertificateTemplate.created_at.desc(),
            CertificateTemplate.id.desc(),
        )
    )
    return result.scalars().all()


async def get_template(db: AsyncSession, template_id: int) -> CertificateTemplate | None:
    result = await db.execute(
        select(CertificateTemplate).where(CertificateTemplate.id == template_id)
    )
    return result.scalar_one_or_none()


async def get_default_template(db: AsyncSession, org_id: int) -> CertificateTemplate | None:
    """Default template of an organization, else its oldest one."""
    result = await db.execute(
        select(CertificateTemplate).where(
            CertificateTemplate.organization_id == org_id,
            CertificateTemplate.is_default == True,  # noqa: E712
        )
    )
    template = result.scalars().first()
    if template:
        return template
    result = await db.execute(
        select(CertificateTemplate)
        .where(CertificateTemplate.organization_id == org_id)
        .order_by(CertificateTemplate.created_at.asc(), CertificateTemplate.id.asc())
    )
    return result.scalars().first()


async def update_template(
    db: AsyncSession, template: CertificateTemplate, data: dict
) -> CertificateTemplate:
    if data.get("is_default"):
        await _clear_default_template(db, template.organization_id)
    for field, value in data.items():
        setattr(template, field, value)
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return template


async def set_default_template(
    db: AsyncSession, template: CertificateTemplate
) -> CertificateTemplate:
    return await update_template(db, template, {"is_default": True})


async def delete_template(db: AsyncSession, template: CertificateTemplate) -> None:
    await db.execute(
        update(Certificate)
        .where(Certificate.template_id == template.id)
        .values(template_id=None)
    )
    await db.delete(template)
    await db.commit()


# ---------------------------------------------------------------------------
# Demo content
# ---------------------------------------------------------------------------


async def ensure_demo_course(db: AsyncSession) -> Course:
    """Create the published demo course (and its instructor) once."""

    existing = await get_course_by_slug(db, DEMO_COURSE["slug"])
    if existing:
        return existing

    instructor = await get_user_by_email(db, DEMO_INSTRUCTOR["email"])
    if not instructor:
        instructor = await create_user(
            db,
            User(
                name=DEMO_INSTRUCTOR["name"],
                email=DEMO_INSTRUCTOR["email"],
                password_hash=DEMO_INSTRUCTOR["password"],
                bio=DEMO_INSTRUCTOR["bio"],
                role=ROLE_INSTRUCTOR,
            ),
        )

    fields = {k: v for k, v in DEMO_COURSE.items() if k != "modules"}
    course = Course(**fields, instructor_id=instructor.id)
    db.add(course)
    await db.flush()
    for module_order, module_data in enumerate(DEMO_COURSE["modules"], start=1):
        module = CourseModule(
            course_id=course.id,
            title=module_data["title"],
            description=module_data["description"],
            order=module_order,
        )
        db.add(module)
        await db.flush()
        for lesson_order, lesson in enumerate(module_data["lessons"], start=1):
            db.add(Lesson(**lesson, module_id=module.id, order=lesson_order))
        quiz_data = module_data.get("quiz")
        if quiz_data:
            quiz = Quiz(
                module_id=module.id,
                title=quiz_data["title"],
                passing_score=quiz_data["passing_score"],
            )
            db.add(quiz)
            await db.flush()
            for order, q in enumerate(quiz_data["questions"], start=1):
                options = [
                    {"id": chr(ord("a") + i), "text": text, "is_correct": i in q["answer"]}
                    for i, text in enumerate(q["options"])
                ]
                db.add(
                    Question(
                        quiz_id=quiz.id,
                        text=q["text"],
                        type=q["type"],
                        options=options,
                        points=q["points"],
                        order=order,
                    )
                )
    await db.commit()
    await db.refresh(course)
    logger.info("Seeded demo course %s", course.slug)
    return course

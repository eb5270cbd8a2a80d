"""Course catalog and course authoring endpoints.

Browsing the catalog needs no account.  Everything that changes a course
is limited to its authors: admins, the instructor who owns it and members
of the organization it belongs to (see ``crud.can_author_course``).
"""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import PERM_MANAGE_COURSES, PERM_VIEW_COURSE_ANALYTICS, ROLE_ADMIN
from app.auth import get_current_user, require_permissions, require_role
from app.database import get_session
from app.models import Course, User
from app.schemas import (
    CourseCreate,
    CourseUpdate,
    CourseRead,
    CourseDetail,
    CourseList,
    CourseSummary,
    NamedCount,
    ModuleCreate,
    ModuleUpdate,
    ModuleRead,
    LessonCreate,
    LessonUpdate,
    LessonRead,
    ReorderModules,
    ReorderLessons,
    CourseAnalytics,
)
from app.crud import (
    list_courses,
    course_summaries,
    get_categories,
    get_tags,
    get_course,
    get_course_by_slug,
    count_course_enrollments,
    create_course,
    update_course,
    delete_course,
    can_author_course,
    get_module,
    create_module,
    update_module,
    delete_module,
    reorder_modules,
    get_lesson,
    create_lesson,
    update_lesson,
    delete_lesson,
    reorder_lessons,
    get_course_analytics,
)

router = APIRouter(prefix="/courses", tags=["courses"])


async def course_detail(db: AsyncSession, course: Course) -> CourseDetail:
    """Serialize a course with its module tree and enrollment count."""
    detail = CourseDetail.model_validate(course)
    return detail.model_copy(
        update={"enrollment_count": await count_course_enrollments(db, course.id)}
    )


async def get_authored_course(db: AsyncSession, course_id: int, user: User) -> Course:
    course = await get_course(db, course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    if not await can_author_course(db, user, course):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only modify your own courses",
        )
    return course


@router.get("/", response_model=CourseList)
async def browse_courses(
    search: str | None = None,
    category: str | None = None,
    level: str | None = None,
    tag: str | None = None,
    is_free: bool | None = None,
    skip: int = Query(0, ge=0),
    take: int = Query(12, ge=1, le=100),
    sort_by: Literal["created_at", "title", "price"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: AsyncSession = Depends(get_session),
):
    """Browse the published catalog."""
    courses, total = await list_courses(
        db,
        search=search,
        category=category,
        level=level,
        tag=tag,
        is_free=is_free,
        skip=skip,
        take=take,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {"courses": await course_summaries(db, courses), "total": total}


@router.get("/categories", response_model=list[NamedCount])
async def list_categories(db: AsyncSession = Depends(get_session)):
    return await get_categories(db)


@router.get("/tags", response_model=list[NamedCount])
async def list_tags(db: AsyncSession = Depends(get_session)):
    return await get_tags(db)


@router.get("/instructor/mine", response_model=list[CourseSummary])
async def my_courses(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_COURSES)),
):
    """Courses taught by the caller, drafts included."""
    courses, _ = await list_courses(
        db, is_published=None, instructor_id=current_user.id, take=1000
    )
    return await course_summaries(db, courses)


@router.get("/id/{course_id}", response_model=CourseDetail)
async def read_course(course_id: int, db: AsyncSession = Depends(get_session)):
    course = await get_course(db, course_id, with_tree=True)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return await course_detail(db, course)


@router.post("/", response_model=CourseRead, status_code=status.HTTP_201_CREATED)
async def create_course_route(
    data: CourseCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_COURSES)),
):
    return await create_course(db, current_user.id, data.model_dump())


@router.patch("/id/{course_id}", response_model=CourseRead)
async def update_course_route(
    course_id: int,
    data: CourseUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    course = await get_authored_course(db, course_id, current_user)
    return await update_course(
        db, course, data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.delete("/id/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course_route(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    course = await get_course(db, course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    await delete_course(db, course)


@router.get("/id/{course_id}/analytics", response_model=CourseAnalytics)
async def course_analytics(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_VIEW_COURSE_ANALYTICS)),
):
    course = await get_authored_course(db, course_id, current_user)
    return await get_course_analytics(db, course)


# Modules

@router.post(
    "/id/{course_id}/modules",
    response_model=ModuleRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_module(
    course_id: int,
    data: ModuleCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await get_authored_course(db, course_id, current_user)
    return await create_module(db, course_id, data.model_dump())


@router.put("/id/{course_id}/modules/reorder", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_modules_route(
    course_id: int,
    data: ReorderModules,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await get_authored_course(db, course_id, current_user)
    await reorder_modules(db, course_id, [m.model_dump() for m in data.modules])


@router.put("/id/{course_id}/lessons/reorder", status_code=status.HTTP_204_NO_CONTENT)
async def reorder_lessons_route(
    course_id: int,
    data: ReorderLessons,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Reorder lessons; a lesson may also move to another module of the course."""
    await get_authored_course(db, course_id, current_user)
    await reorder_lessons(db, course_id, [item.model_dump() for item in data.lessons])


@router.patch("/modules/{module_id}", response_model=ModuleRead)
async def edit_module(
    module_id: int,
    data: ModuleUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    module = await get_module(db, module_id)
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")
    await get_authored_course(db, module.course_id, current_user)
    return await update_module(
        db, module, data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.delete("/modules/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_module(
    module_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    module = await get_module(db, module_id)
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")
    await get_authored_course(db, module.course_id, current_user)
    await delete_module(db, module)


# Lessons

@router.post(
    "/modules/{module_id}/lessons",
    response_model=LessonRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_lesson(
    module_id: int,
    data: LessonCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    module = await get_module(db, module_id)
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")
    await get_authored_course(db, module.course_id, current_user)
    return await create_lesson(db, module_id, data.model_dump())


@router.patch("/lessons/{lesson_id}", response_model=LessonRead)
async def edit_lesson(
    lesson_id: int,
    data: LessonUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    lesson = await get_lesson(db, lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    await get_authored_course(db, lesson.module.course_id, current_user)
    return await update_lesson(
        db, lesson, data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_lesson(
    lesson_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    lesson = await get_lesson(db, lesson_id)
    if not lesson:
        raise HTTPException(status_code=404, detail="Lesson not found")
    await get_authored_course(db, lesson.module.course_id, current_user)
    await delete_lesson(db, lesson)


# Slug lookups match any single path segment, so this route comes last.
@router.get("/{slug}", response_model=CourseDetail)
async def read_course_by_slug(slug: str, db: AsyncSession = Depends(get_session)):
    course = await get_course_by_slug(db, slug)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return await course_detail(db, course)

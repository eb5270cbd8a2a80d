"""Enrollment endpoints and lesson progress tracking."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_session
from app.models import User
from app.schemas import (
    ProgressUpdate,
    LessonProgressRead,
    EnrollmentRead,
    EnrollmentWithCourse,
    EnrollmentDetail,
    EnrollmentCheck,
    ProgressResult,
)
from app.crud import (
    enroll,
    list_user_enrollments,
    course_summaries,
    get_enrollment,
    get_enrollment_for_course,
    get_lesson_progress,
    record_lesson_progress,
    unenroll,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/enrollments", tags=["enrollments"])


@router.post(
    "/course/{course_id}",
    response_model=EnrollmentRead,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await enroll(db, current_user.id, course_id)


@router.get("/", response_model=list[EnrollmentWithCourse])
async def my_enrollments(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    enrollments = await list_user_enrollments(db, current_user.id)
    summaries = await course_summaries(db, [e.course for e in enrollments])
    return [
        {**e.model_dump(), "course": summary}
        for e, summary in zip(enrollments, summaries)
    ]


@router.get("/course/{course_id}", response_model=EnrollmentDetail)
async def my_course_enrollment(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """The caller's enrollment with the full course tree and lesson progress."""
    enrollment = await get_enrollment_for_course(
        db, current_user.id, course_id, with_details=True
    )
    if not enrollment:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    return enrollment


@router.get("/course/{course_id}/check", response_model=EnrollmentCheck)
async def check_enrollment(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    enrollment = await get_enrollment_for_course(db, current_user.id, course_id)
    return EnrollmentCheck(is_enrolled=enrollment is not None)


@router.delete("/course/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def leave_course(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    enrollment = await get_enrollment_for_course(db, current_user.id, course_id)
    if not enrollment:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    await unenroll(db, enrollment)
    logger.info("User %s left course %s", current_user.id, course_id)


@router.patch(
    "/{enrollment_id}/lessons/{lesson_id}/progress", response_model=ProgressResult
)
async def update_lesson_progress(
    enrollment_id: int,
    lesson_id: int,
    data: ProgressUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Report playback position; completes lessons and the course as earned."""
    progress, enrollment, certificate = await record_lesson_progress(
        db,
        current_user.id,
        enrollment_id,
        lesson_id,
        data.watched_seconds,
        client_completed=data.completed,
    )
    return {
        "lesson_progress": progress,
        "enrollment": enrollment,
        "certificate": certificate,
    }


@router.get(
    "/{enrollment_id}/lessons/{lesson_id}/progress", response_model=LessonProgressRead
)
async def read_lesson_progress(
    enrollment_id: int,
    lesson_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    enrollment = await get_enrollment(db, enrollment_id)
    if not enrollment or enrollment.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    progress = await get_lesson_progress(db, enrollment_id, lesson_id)
    if not progress:
        raise HTTPException(status_code=404, detail="Lesson progress not found")
    return progress

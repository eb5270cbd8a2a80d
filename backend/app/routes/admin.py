from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import PERM_MANAGE_USERS, ROLE_ADMIN
from app.database import get_session
from app.auth import require_role, require_permissions, get_password_hash
from app.models import User
from app.schemas import (
    UserResponse,
    UserUpdate,
    UserList,
    EnrollmentRead,
    CourseEnrollmentRead,
    EnrollmentStatusUpdate,
)
from app.crud import (
    list_users,
    get_user,
    get_user_by_email,
    save_user,
    delete_user,
    reset_permissions_for_role,
    get_course,
    list_course_enrollments,
    get_enrollment,
    set_enrollment_status,
    issue_certificate_if_eligible,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=UserList)
async def admin_list_users(
    role: str | None = None,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_USERS)),
):
    users, total = await list_users(db, role=role, skip=skip, take=take)
    return {"users": users, "total": total}


@router.get("/users/{user_id}", response_model=UserResponse)
async def admin_get_user(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_USERS)),
):
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/users/{user_id}", response_model=UserResponse)
async def admin_update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_USERS)),
):
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if data.email is not None and data.email != user.email:
        if await get_user_by_email(db, data.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "code": "auth_email_registered",
                    "message": "Email is already registered.",
                },
            )
    role_changed = data.role is not None and data.role != user.role
    if data.password is not None:
        user.password_hash = get_password_hash(data.password)
    for field, value in data.model_dump(
        exclude_unset=True, exclude_none=True, exclude={"password"}
    ).items():
        setattr(user, field, value)
    user = await save_user(db, user)
    if role_changed:
        await reset_permissions_for_role(db, user)
    return user


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_USERS)),
):
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot delete yourself")
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    await delete_user(db, user)


@router.get(
    "/courses/{course_id}/enrollments", response_model=list[CourseEnrollmentRead]
)
async def admin_course_enrollments(
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    if not await get_course(db, course_id):
        raise HTTPException(status_code=404, detail="Course not found")
    return await list_course_enrollments(db, course_id)


@router.patch("/enrollments/{enrollment_id}/status", response_model=EnrollmentRead)
async def admin_set_enrollment_status(
    enrollment_id: int,
    data: EnrollmentStatusUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    """Force an enrollment's status, e.g. to expire a learner's access."""
    enrollment = await get_enrollment(db, enrollment_id)
    if not enrollment:
        raise HTTPException(status_code=404, detail="Enrollment not found")
    enrollment = await set_enrollment_status(db, enrollment, data.status)
    if enrollment.status == "completed":
        await issue_certificate_if_eligible(db, enrollment.id)
    return enrollment

"""Organization portal: organizations, their members and their courses."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import ORG_ROLE_OWNER, ROLE_ADMIN
from app.auth import get_current_user, require_role
from app.database import get_session
from app.exceptions import PermissionDeniedError
from app.models import Course, Organization, User
from app.schemas import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationRead,
    MemberAdd,
    MemberRoleUpdate,
    MemberRead,
    CourseCreate,
    CourseUpdate,
    CourseRead,
    CourseSummary,
    CourseDetail,
    CourseEnrollmentRead,
    CourseAnalytics,
)
from app.crud import (
    create_organization,
    list_organizations,
    list_user_organizations,
    organization_summaries,
    get_organization,
    get_organization_by_slug,
    get_membership,
    get_user,
    update_organization,
    delete_organization,
    verify_member_access,
    list_members,
    add_member,
    remove_member,
    update_member_role,
    create_course,
    list_courses,
    course_summaries,
    get_course,
    update_course,
    delete_course,
    list_course_enrollments,
    get_course_analytics,
)
from app.routes.courses import course_detail

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/organizations", tags=["organizations"])


async def _get_org(db: AsyncSession, org_id: int) -> Organization:
    org = await get_organization(db, org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


async def _read(db: AsyncSession, org: Organization, role: str | None = None) -> dict:
    summaries = await organization_summaries(db, [org], {org.id: role})
    return summaries[0]


def _member_read(member, user: User) -> MemberRead:
    return MemberRead(
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=member.role,
        joined_at=member.joined_at,
    )


async def _org_course(
    db: AsyncSession, org_id: int, course_id: int, user: User, with_tree: bool = False
) -> Course:
    await verify_member_access(db, org_id, user.id)
    course = await get_course(db, course_id, with_tree=with_tree)
    if not course or course.organization_id != org_id:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


@router.post("/", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
async def create_org(
    data: OrganizationCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    org = await create_organization(db, current_user.id, data.model_dump())
    return await _read(db, org, ORG_ROLE_OWNER)


@router.get("/", response_model=list[OrganizationRead])
async def list_orgs(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_role(ROLE_ADMIN)),
):
    return await organization_summaries(db, await list_organizations(db))


@router.get("/my", response_model=list[OrganizationRead])
async def my_orgs(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Organizations the caller belongs to, with the caller's role in each."""
    rows = await list_user_organizations(db, current_user.id)
    roles = {org.id: role for org, role in rows}
    return await organization_summaries(db, [org for org, _ in rows], roles)


@router.get("/{slug}", response_model=OrganizationRead)
async def read_org(
    slug: str,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    org = await get_organization_by_slug(db, slug)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    member = await get_membership(db, org.id, current_user.id)
    if not member and current_user.role != ROLE_ADMIN:
        raise PermissionDeniedError(
            "You are not a member of this organization", "organization_not_member"
        )
    return await _read(db, org, member.role if member else None)


@router.patch("/{org_id}", response_model=OrganizationRead)
async def update_org(
    org_id: int,
    data: OrganizationUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    org = await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id, [ORG_ROLE_OWNER])
    org = await update_organization(
        db, org, data.model_dump(exclude_unset=True, exclude_none=True)
    )
    return await _read(db, org, ORG_ROLE_OWNER)


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_org(
    org_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    org = await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id, [ORG_ROLE_OWNER])
    await delete_organization(db, org)
    logger.info("Organization %s deleted by user %s", org.slug, current_user.id)


# Members

@router.get("/{org_id}/members", response_model=list[MemberRead])
async def read_members(
    org_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id)
    return [_member_read(member, user) for member, user in await list_members(db, org_id)]


@router.post(
    "/{org_id}/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED
)
async def invite_member(
    org_id: int,
    data: MemberAdd,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id, [ORG_ROLE_OWNER])
    member = await add_member(db, org_id, data.user_id, data.role)
    return _member_read(member, await get_user(db, member.user_id))


@router.patch("/{org_id}/members/{user_id}", response_model=MemberRead)
async def change_member_role(
    org_id: int,
    user_id: int,
    data: MemberRoleUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id, [ORG_ROLE_OWNER])
    member = await update_member_role(db, org_id, user_id, data.role)
    return _member_read(member, await get_user(db, user_id))


@router.delete("/{org_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member_route(
    org_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id, [ORG_ROLE_OWNER])
    await remove_member(db, org_id, user_id)


# Courses

@router.post(
    "/{org_id}/courses", response_model=CourseRead, status_code=status.HTTP_201_CREATED
)
async def create_org_course(
    org_id: int,
    data: CourseCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id)
    return await create_course(
        db, current_user.id, data.model_dump(), organization_id=org_id
    )


@router.get("/{org_id}/courses", response_model=list[CourseSummary])
async def list_org_courses(
    org_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """All of the organization's courses, drafts included."""
    await _get_org(db, org_id)
    await verify_member_access(db, org_id, current_user.id)
    courses, _ = await list_courses(
        db, is_published=None, organization_id=org_id, take=1000
    )
    return await course_summaries(db, courses)


@router.get("/{org_id}/courses/{course_id}", response_model=CourseDetail)
async def read_org_course(
    org_id: int,
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    course = await _org_course(db, org_id, course_id, current_user, with_tree=True)
    return await course_detail(db, course)


@router.patch("/{org_id}/courses/{course_id}", response_model=CourseRead)
async def update_org_course(
    org_id: int,
    course_id: int,
    data: CourseUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    course = await _org_course(db, org_id, course_id, current_user)
    return await update_course(
        db, course, data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.delete(
    "/{org_id}/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_org_course(
    org_id: int,
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    course = await _org_course(db, org_id, course_id, current_user)
    await delete_course(db, course)


@router.get(
    "/{org_id}/courses/{course_id}/enrollments",
    response_model=list[CourseEnrollmentRead],
)
async def org_course_enrollments(
    org_id: int,
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    course = await _org_course(db, org_id, course_id, current_user)
    return await list_course_enrollments(db, course.id)


@router.get(
    "/{org_id}/courses/{course_id}/analytics", response_model=CourseAnalytics
)
async def org_course_analytics(
    org_id: int,
    course_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    course = await _org_course(db, org_id, course_id, current_user)
    return await get_course_analytics(db, course)

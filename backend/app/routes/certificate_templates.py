"""Per-organization certificate designs."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_session
from app.models import CertificateTemplate, User
from app.schemas import (
    CertificateTemplateCreate,
    CertificateTemplateUpdate,
    CertificateTemplateRead,
)
from app.crud import (
    get_organization,
    verify_member_access,
    create_template,
    list_templates,
    get_template,
    get_default_template,
    update_template,
    set_default_template,
    delete_template,
)

router = APIRouter(
    prefix="/organizations/{org_id}/certificate-templates",
    tags=["certificate-templates"],
)


async def _check_member(db: AsyncSession, org_id: int, user: User) -> None:
    if not await get_organization(db, org_id):
        raise HTTPException(status_code=404, detail="Organization not found")
    await verify_member_access(db, org_id, user.id)


async def _get(db: AsyncSession, org_id: int, template_id: int) -> CertificateTemplate:
    template = await get_template(db, template_id)
    if not template or template.organization_id != org_id:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.post("/", response_model=CertificateTemplateRead, status_code=status.HTTP_201_CREATED)
async def create(
    org_id: int,
    data: CertificateTemplateCreate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _check_member(db, org_id, current_user)
    return await create_template(db, org_id, data.model_dump())


@router.get("/", response_model=list[CertificateTemplateRead])
async def list_all(
    org_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _check_member(db, org_id, current_user)
    return await list_templates(db, org_id)


@router.get("/default", response_model=CertificateTemplateRead | None)
async def read_default(
    org_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """The template new certificates use; the oldest one if none is flagged."""
    await _check_member(db, org_id, current_user)
    return await get_default_template(db, org_id)


@router.get("/{template_id}", response_model=CertificateTemplateRead)
async def read(
    org_id: int,
    template_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _check_member(db, org_id, current_user)
    return await _get(db, org_id, template_id)


@router.patch("/{template_id}", response_model=CertificateTemplateRead)
async def update(
    org_id: int,
    template_id: int,
    data: CertificateTemplateUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _check_member(db, org_id, current_user)
    template = await _get(db, org_id, template_id)
    return await update_template(
        db, template, data.model_dump(exclude_unset=True, exclude_none=True)
    )


@router.post("/{template_id}/set-default", response_model=CertificateTemplateRead)
async def make_default(
    org_id: int,
    template_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _check_member(db, org_id, current_user)
    template = await _get(db, org_id, template_id)
    return await set_default_template(db, template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove(
    org_id: int,
    template_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    await _check_member(db, org_id, current_user)
    template = await _get(db, org_id, template_id)
    await delete_template(db, template)

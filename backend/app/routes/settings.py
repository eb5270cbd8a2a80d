"""Endpoints for viewing and updating site-wide settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import PERM_MANAGE_SETTINGS
from app.database import get_session
from app.models import User
from app.auth import require_permissions
from app.schemas import SettingsRead, SettingsUpdate
from app.crud import get_settings, save_settings

router = APIRouter(prefix="/settings", tags=["settings"])


def _to_read(settings) -> SettingsRead:
    return SettingsRead(
        site_name=settings.site_name,
        public_registration_disabled=settings.public_registration_disabled,
        default_passing_score=settings.default_passing_score,
        certificate_code_prefix=settings.certificate_code_prefix,
    )


@router.get("/", response_model=SettingsRead)
async def read_settings(db: AsyncSession = Depends(get_session)):
    """Retrieve the current configuration values."""
    return _to_read(await get_settings(db))


@router.put("/", response_model=SettingsRead)
async def update_settings(
    data: SettingsUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_SETTINGS)),
):
    """Update settings; only fields present in the request change."""
    settings = await get_settings(db)
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(settings, field, value)
    return _to_read(await save_settings(db, settings))

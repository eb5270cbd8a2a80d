from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.schemas import UserMeResponse, ProfileUpdate, UserStats
from app.models import User
from app.database import get_session
from app.crud import get_user, save_user, get_user_stats
from app.auth import get_current_user

router = APIRouter(prefix="/users", tags=["users"])


def _me(user: User) -> UserMeResponse:
    return UserMeResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        avatar=user.avatar,
        bio=user.bio,
        created_at=user.created_at,
        certificate_display_name=user.certificate_display_name,
        permissions=[p.name for p in user.permissions],
    )


@router.get("/me", response_model=UserMeResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Return details for the authenticated user."""
    return _me(current_user)


@router.patch("/me", response_model=UserMeResponse)
async def update_profile(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    """Edit the caller's own profile, including the name printed on certificates."""
    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "name" and value is None:
            continue
        setattr(current_user, field, value)
    await save_user(db, current_user)
    return _me(await get_user(db, current_user.id))


@router.get("/me/stats", response_model=UserStats)
async def read_my_stats(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return UserStats(**await get_user_stats(db, current_user.id))

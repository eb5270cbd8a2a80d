"""Certificate listing, public verification and administration."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.acl import PERM_MANAGE_CERTIFICATES, ROLE_ADMIN
from app.auth import get_current_user, require_permissions
from app.database import get_session
from app.models import User
from app.schemas import CertificateRead, CertificatePdfUpdate, CertificateVerification
from app.crud import (
    list_user_certificates,
    get_certificate,
    verify_certificate,
    save_certificate,
    delete_certificate,
)

router = APIRouter(prefix="/certificates", tags=["certificates"])


@router.get("/", response_model=list[CertificateRead])
async def my_certificates(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await list_user_certificates(db, current_user.id)


@router.get("/verify/{code}", response_model=CertificateVerification)
async def verify(code: str, db: AsyncSession = Depends(get_session)):
    """Public check that a certificate code was issued by this platform."""
    return await verify_certificate(db, code)


@router.get("/{certificate_id}", response_model=CertificateRead)
async def read_certificate(
    certificate_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    certificate = await get_certificate(db, certificate_id)
    if not certificate:
        raise HTTPException(status_code=404, detail="Certificate not found")
    if certificate.user_id != current_user.id and current_user.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not your certificate"
        )
    return certificate


@router.patch("/{certificate_id}/pdf", response_model=CertificateRead)
async def attach_pdf(
    certificate_id: int,
    data: CertificatePdfUpdate,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_CERTIFICATES)),
):
    """Record where the rendered certificate document lives."""
    certificate = await get_certificate(db, certificate_id)
    if not certificate:
        raise HTTPException(status_code=404, detail="Certificate not found")
    certificate.pdf_url = data.pdf_url
    return await save_certificate(db, certificate)


@router.delete("/{certificate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_certificate(
    certificate_id: int,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(require_permissions(PERM_MANAGE_CERTIFICATES)),
):
    certificate = await get_certificate(db, certificate_id)
    if not certificate:
        raise HTTPException(status_code=404, detail="Certificate not found")
    await delete_certificate(db, certificate)

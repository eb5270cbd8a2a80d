"""Schemas for issued certificates and public verification."""

from datetime import datetime

from pydantic import BaseModel


class CertificateRead(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    unique_code: str
    user_id: int
    course_id: int
    enrollment_id: int | None = None
    template_id: int | None = None
    issued_at: datetime
    pdf_url: str | None = None


class CertificatePdfUpdate(BaseModel):
    pdf_url: str


class VerifiedCertificate(BaseModel):
    unique_code: str
    recipient_name: str
    course_name: str
    course_level: str
    issued_at: datetime
    instructor_name: str


class CertificateVerification(BaseModel):
    valid: bool
    certificate: VerifiedCertificate | None = None

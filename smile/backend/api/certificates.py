"""
SMILE Learning Activities Backend
Certificate API routes: programs, enrollment, progress and verification
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db
from ..database.models import (
    Activity, Certificate, CertificateActivity, CertificateStatus, StudentCertificate,
    User, UserRole
)
from ..dependencies import require_authentication, require_teacher_or_admin
from ..exceptions import (
    AuthorizationException, BusinessLogicException, DuplicateResourceException,
    ResourceNotFoundByIdException, ValidationException
)
from ..services.progress import calculate_certificate_progress
from ..utils.helpers import generate_verification_code, parse_uuid

# Configure logging
logger = logging.getLogger(__name__)

# Router instance
router = APIRouter()


# Pydantic models
class CertificateActivityItem(BaseModel):
    activity_id: str
    sequence_order: Optional[int] = None
    required: bool = True


class CertificateCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    organization_name: Optional[str] = Field(None, max_length=255)
    program_name: Optional[str] = Field(None, max_length=255)
    certificate_statement: Optional[str] = None
    status: CertificateStatus = CertificateStatus.DRAFT
    activities: List[CertificateActivityItem] = []

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Certificate name is required')
        return v.strip()

    @field_validator('activities')
    @classmethod
    def validate_unique_activities(cls, v):
        ids = [item.activity_id for item in v]
        if len(ids) != len(set(ids)):
            raise ValueError('An activity can only be linked once')
        return v


class CertificateStatusRequest(BaseModel):
    status: CertificateStatus


# Helper functions
async def load_certificate(db: AsyncSession, certificate_id: str) -> Certificate:
    certificate_uuid = parse_uuid(certificate_id, "certificate_id")
    result = await db.execute(
        select(Certificate).where(Certificate.id == certificate_uuid, Certificate.is_deleted == False)
    )
    certificate = result.scalar_one_or_none()
    if not certificate:
        raise ResourceNotFoundByIdException("certificate", certificate_id)
    return certificate


async def certificate_activities(db: AsyncSession, certificate: Certificate) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(CertificateActivity, Activity)
        .join(Activity, Activity.id == CertificateActivity.activity_id)
        .where(
            CertificateActivity.certificate_id == certificate.id,
            CertificateActivity.is_deleted == False
        )
        .order_by(CertificateActivity.sequence_order)
    )
    return [
        {
            "activity_id": str(activity.id),
            "name": activity.name,
            "mode": activity.mode,
            "sequence_order": link.sequence_order,
            "required": link.required,
        }
        for link, activity in result.all()
    ]


def certificate_to_dict(certificate: Certificate) -> Dict[str, Any]:
    return {
        "id": str(certificate.id),
        "name": certificate.name,
        "description": certificate.description,
        "organization_name": certificate.organization_name,
        "program_name": certificate.program_name,
        "certificate_statement": certificate.certificate_statement,
        "status": certificate.status,
        "creator_id": str(certificate.creator_id),
        "created_at": certificate.created_at,
    }


async def load_enrollment(db: AsyncSession, certificate: Certificate, user: User) -> Optional[StudentCertificate]:
    result = await db.execute(
        select(StudentCertificate).where(
            StudentCertificate.certificate_id == certificate.id,
            StudentCertificate.user_id == user.id,
            StudentCertificate.is_deleted == False
        )
    )
    return result.scalar_one_or_none()


async def unique_verification_code(db: AsyncSession) -> str:
    while True:
        code = generate_verification_code()
        result = await db.execute(
            select(StudentCertificate.id).where(StudentCertificate.verification_code == code)
        )
        if result.first() is None:
            return code


# API Routes
@router.post("", status_code=201)
async def create_certificate(
    request: CertificateCreateRequest,
    current_user: User = Depends(require_teacher_or_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a certificate program linking ordered activities"""

    certificate = Certificate(
        name=request.name,
        description=request.description,
        organization_name=request.organization_name,
        program_name=request.program_name,
        certificate_statement=request.certificate_statement,
        status=request.status.value,
        creator_id=current_user.id,
    )
    db.add(certificate)
    await db.flush()

    for index, item in enumerate(request.activities):
        activity_uuid = parse_uuid(item.activity_id, "activity_id")
        activity = await db.get(Activity, activity_uuid)
        if not activity or activity.is_deleted:
            raise ValidationException("Unknown activity", field="activities", value=item.activity_id)
        db.add(CertificateActivity(
            certificate_id=certificate.id,
            activity_id=activity.id,
            sequence_order=item.sequence_order if item.sequence_order is not None else index,
            required=item.required,
        ))

    await db.commit()

    logger.info(f"🎓 Certificate '{certificate.name}' created by {current_user.email}")
    return {
        "message": "Certificate created successfully",
        "certificate_id": str(certificate.id),
        "certificate": certificate_to_dict(certificate),
    }


@router.get("")
async def list_certificates(
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Active certificates, plus the caller's own programs for teachers"""

    query = select(Certificate).where(Certificate.is_deleted == False)
    if current_user.role == UserRole.STUDENT:
        query = query.where(Certificate.status == CertificateStatus.ACTIVE.value)
    elif current_user.role == UserRole.TEACHER:
        query = query.where(
            (Certificate.status == CertificateStatus.ACTIVE.value)
            | (Certificate.creator_id == current_user.id)
        )

    result = await db.execute(query.order_by(Certificate.created_at.desc()))
    certificates = [certificate_to_dict(certificate) for certificate in result.scalars()]
    return {"certificates": certificates, "total": len(certificates)}


@router.get("/verify/{verification_code}")
async def verify_certificate(
    verification_code: str = Path(..., description="Verification code"),
    db: AsyncSession = Depends(get_db)
):
    """Public verification of an issued certificate"""

    result = await db.execute(
        select(StudentCertificate, Certificate, User)
        .join(Certificate, Certificate.id == StudentCertificate.certificate_id)
        .join(User, User.id == StudentCertificate.user_id)
        .where(
            StudentCertificate.verification_code == verification_code.strip().upper(),
            StudentCertificate.is_deleted == False
        )
    )
    row = result.first()
    if row is None:
        return {"valid": False, "verification_code": verification_code}

    enrollment, certificate, user = row
    return {
        "valid": enrollment.status == "completed",
        "verification_code": enrollment.verification_code,
        "status": enrollment.status,
        "certificate": {
            "name": certificate.name,
            "organization_name": certificate.organization_name,
            "program_name": certificate.program_name,
            "certificate_statement": certificate.certificate_statement,
        },
        "recipient": user.name,
        "completed_at": enrollment.completed_at,
    }


@router.get("/{certificate_id}")
async def get_certificate(
    certificate_id: str = Path(..., description="Certificate ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    certificate = await load_certificate(db, certificate_id)

    if certificate.status != CertificateStatus.ACTIVE.value and current_user.role == UserRole.STUDENT:
        raise ResourceNotFoundByIdException("certificate", certificate_id)

    enrollment = await load_enrollment(db, certificate, current_user)
    return {
        **certificate_to_dict(certificate),
        "activities": await certificate_activities(db, certificate),
        "enrolled": enrollment is not None,
    }


@router.patch("/{certificate_id}/status")
async def update_certificate_status(
    request: CertificateStatusRequest,
    certificate_id: str = Path(..., description="Certificate ID"),
    current_user: User = Depends(require_teacher_or_admin),
    db: AsyncSession = Depends(get_db)
):
    certificate = await load_certificate(db, certificate_id)

    if certificate.creator_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise AuthorizationException("Only the certificate creator can change its status")

    previous = certificate.status
    certificate.status = request.status.value
    await db.commit()

    logger.info(f"Certificate {certificate.id} status {previous} -> {certificate.status}")
    return {"message": "Certificate status updated", "certificate": certificate_to_dict(certificate)}


@router.post("/{certificate_id}/enroll", status_code=201)
async def enroll_in_certificate(
    certificate_id: str = Path(..., description="Certificate ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Enroll the current user in an active certificate program"""

    certificate = await load_certificate(db, certificate_id)
    if certificate.status != CertificateStatus.ACTIVE.value:
        raise BusinessLogicException("Certificate is not open for enrollment", rule_name="certificate_active")

    if await load_enrollment(db, certificate, current_user):
        raise DuplicateResourceException("enrollment", "certificate_id", certificate_id)

    enrollment = StudentCertificate(
        certificate_id=certificate.id,
        user_id=current_user.id,
        verification_code=await unique_verification_code(db),
    )
    db.add(enrollment)
    await db.commit()

    logger.info(f"User {current_user.email} enrolled in certificate {certificate.id}")
    return {
        "message": "Enrolled successfully",
        "enrollment_id": str(enrollment.id),
        "verification_code": enrollment.verification_code,
        "status": enrollment.status,
    }


@router.get("/{certificate_id}/progress")
async def get_certificate_progress(
    certificate_id: str = Path(..., description="Certificate ID"),
    current_user: User = Depends(require_authentication),
    db: AsyncSession = Depends(get_db)
):
    """Per-activity progress of the current user's enrollment"""

    certificate = await load_certificate(db, certificate_id)
    enrollment = await load_enrollment(db, certificate, current_user)
    if not enrollment:
        raise BusinessLogicException("You are not enrolled in this certificate", rule_name="enrollment_required")

    progress = await calculate_certificate_progress(db, enrollment, certificate)
    await db.commit()

    return {
        "certificate_id": str(certificate.id),
        "status": enrollment.status,
        "verification_code": enrollment.verification_code,
        "completed_at": enrollment.completed_at,
        **progress,
    }

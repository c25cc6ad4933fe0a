"""Consent protocol models: pending requests, grants and emergency reviews.

A PendingRequest lives from the moment a hospital asks for access until the
patient redeems its code (or it expires). Redemption replaces it with a Grant.
Grants are permanent: nothing in the protocol updates or deletes them.
"""

import enum
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import AppendOnlyMixin, BaseModel, ensure_utc
from .db_types import UUID


class GrantType(enum.Enum):
    """How a grant came about."""

    CONSENT = "consent"
    EMERGENCY = "emergency"


class ReviewStatus(enum.Enum):
    """Post-incident review state of an emergency override."""

    PENDING = "pending"
    REVIEWED = "reviewed"


class PendingRequest(BaseModel):
    """An unredeemed access request awaiting code confirmation."""

    __tablename__ = "pending_requests"

    patient_id = Column(
        UUID(), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    hospital_id = Column(
        UUID(), ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False
    )
    staff_id = Column(
        UUID(), ForeignKey("healthcare_staff.id", ondelete="CASCADE"), nullable=False
    )
    code = Column(String(10), nullable=False)

    patient = relationship("Patient")
    hospital = relationship("Hospital")
    staff = relationship("HealthcareStaff")

    __table_args__ = (
        UniqueConstraint("hospital_id", "patient_id", name="uq_pending_hospital_patient"),
        UniqueConstraint("code", name="uq_pending_code"),
        Index("idx_pending_patient_time", "patient_id", "created_at"),
    )

    def is_expired(self, ttl_minutes: Optional[int], now: datetime) -> bool:
        """Check the request against an optional time-to-live."""
        if ttl_minutes is None:
            return False
        return ensure_utc(self.created_at) + timedelta(minutes=ttl_minutes) <= now

    def to_dict(self, include_code: bool = False) -> dict:
        """Serialize; the code is only included for the owning patient."""
        data = super().to_dict()
        if not include_code:
            data.pop("code", None)
        return data


class Grant(AppendOnlyMixin, BaseModel):
    """A permanent record that a hospital may access a patient's data."""

    __tablename__ = "access_grants"

    patient_id = Column(
        UUID(), ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False
    )
    hospital_id = Column(
        UUID(), ForeignKey("hospitals.id", ondelete="RESTRICT"), nullable=False
    )
    staff_id = Column(
        UUID(), ForeignKey("healthcare_staff.id", ondelete="RESTRICT"), nullable=False
    )
    grant_type = Column(
        Enum(GrantType, name="grant_type"), nullable=False, default=GrantType.CONSENT
    )

    hospital = relationship("Hospital")
    staff = relationship("HealthcareStaff")

    __table_args__ = (
        Index("idx_grant_hospital_patient", "hospital_id", "patient_id"),
        Index("idx_grant_patient_time", "patient_id", "created_at"),
    )

    @property
    def is_emergency(self) -> bool:
        """Whether this grant came from the emergency override."""
        return self.grant_type == GrantType.EMERGENCY


class EmergencyReview(BaseModel):
    """Review ticket opened for every emergency override grant."""

    __tablename__ = "emergency_reviews"

    grant_id = Column(
        UUID(), ForeignKey("access_grants.id", ondelete="RESTRICT"), nullable=False, unique=True
    )
    audit_log_id = Column(UUID(), ForeignKey("audit_logs.id"), nullable=False)
    patient_id = Column(UUID(), ForeignKey("patients.id"), nullable=False)
    hospital_id = Column(UUID(), ForeignKey("hospitals.id"), nullable=False, index=True)
    staff_id = Column(UUID(), ForeignKey("healthcare_staff.id"), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(
        Enum(ReviewStatus, name="review_status"),
        nullable=False,
        default=ReviewStatus.PENDING,
        index=True,
    )
    reviewed_by = Column(UUID(), ForeignKey("healthcare_staff.id"))
    reviewed_at = Column(DateTime(timezone=True))
    review_notes = Column(Text)

    grant = relationship("Grant")

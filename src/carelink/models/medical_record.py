"""Medical record database model."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text

from .base import BaseModel, utcnow
from .db_types import UUID

# Clinical fields staff may set on create/update
CLINICAL_FIELDS = frozenset(
    {
        "transaction",
        "medication",
        "notes",
        "assessment",
        "blood_pressure",
        "drinking",
        "smoking",
        "height",
        "weight",
        "doctor_id",
    }
)


class MedicalRecord(BaseModel):
    """A clinical entry written by one hospital about a patient.

    The hospital that wrote a record is the only one allowed to change it.
    """

    __tablename__ = "medical_records"

    patient_id = Column(
        UUID(), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    hospital_id = Column(
        UUID(), ForeignKey("hospitals.id", ondelete="RESTRICT"), nullable=False
    )
    staff_id = Column(
        UUID(), ForeignKey("healthcare_staff.id", ondelete="RESTRICT"), nullable=False
    )

    transaction = Column(String(200))
    medication = Column(Text)
    notes = Column(Text)
    assessment = Column(Text)
    blood_pressure = Column(String(20))
    drinking = Column(Boolean, default=False)
    smoking = Column(Boolean, default=False)
    height = Column(String(20))
    weight = Column(String(20))
    doctor_id = Column(UUID())

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_record_patient_time", "patient_id", "created_at"),)

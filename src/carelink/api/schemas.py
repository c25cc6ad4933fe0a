"""Request models for the CareLink Consent API."""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccessRequestCreate(BaseModel):
    """Hospital asks for access to a patient."""

    hospital_id: uuid.UUID = Field(..., description="Requesting hospital")
    patient_id: uuid.UUID = Field(..., description="Patient whose data is requested")


class OtpVerifyRequest(BaseModel):
    """Code redemption."""

    code: str = Field(..., description="One-time code delivered to the patient")


class EmergencyOverrideRequest(BaseModel):
    """Break-glass access request."""

    patient_id: uuid.UUID
    reason: str = Field(..., description="Written justification, checked by the service")


class ReviewCompleteRequest(BaseModel):
    """Closing notes for an emergency review."""

    notes: str


class RecordFields(BaseModel):
    """Clinical fields of a medical record. Unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    transaction: Optional[str] = None
    medication: Optional[str] = None
    notes: Optional[str] = None
    assessment: Optional[str] = None
    blood_pressure: Optional[str] = None
    drinking: Optional[bool] = None
    smoking: Optional[bool] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    doctor_id: Optional[uuid.UUID] = None


class RecordCreateRequest(RecordFields):
    """New medical record for a patient."""

    patient_id: uuid.UUID

    def clinical_fields(self) -> dict:
        """Fields to store, without the patient id."""
        return self.model_dump(exclude_unset=True, exclude={"patient_id"})

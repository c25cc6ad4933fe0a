"""Database models for CareLink Consent."""

from .access import EmergencyReview, Grant, GrantType, PendingRequest, ReviewStatus
from .audit_log import ACCESS_GRANTING_ACTIONS, AuditAction, AuditLog
from .base import Base, BaseModel, ensure_utc, utcnow
from .hospital import Hospital
from .medical_record import CLINICAL_FIELDS, MedicalRecord
from .patient import Patient
from .staff import Capability, HealthcareStaff, RoleTier

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "ensure_utc",
    "Hospital",
    "Patient",
    "HealthcareStaff",
    "RoleTier",
    "Capability",
    "PendingRequest",
    "Grant",
    "GrantType",
    "EmergencyReview",
    "ReviewStatus",
    "MedicalRecord",
    "CLINICAL_FIELDS",
    "AuditLog",
    "AuditAction",
    "ACCESS_GRANTING_ACTIONS",
]

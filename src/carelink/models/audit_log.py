"""
Audit Log Model.

One row per state-changing operation of the consent protocol. Rows are
append-only and carry a keyed checksum so that later modification of a stored
row can be detected.
"""

import enum
import hashlib
import hmac
from typing import Optional

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Index, String, Text

from .base import AppendOnlyMixin, BaseModel, ensure_utc
from .db_types import UUID


class AuditAction(enum.Enum):
    """Types of audit actions in the system."""

    REQUESTED_DATA = "REQUESTED_DATA"
    ACCEPTED_REQUEST = "ACCEPTED_REQUEST"
    REQUEST_EXPIRED = "REQUEST_EXPIRED"
    EMERGENCY_OVERRIDE = "EMERGENCY_OVERRIDE"
    EMERGENCY_OVERRIDE_REVIEWED = "EMERGENCY_OVERRIDE_REVIEWED"
    CREATED_NEW_RECORD = "CREATED_NEW_RECORD"
    UPDATED_RECORD = "UPDATED_RECORD"
    DELETED_RECORD = "DELETED_RECORD"

    def render(self, detail: Optional[str] = None) -> str:
        """Build the human-readable action text, e.g. ``EMERGENCY_OVERRIDE: <reason>``."""
        if detail:
            return f"{self.value}: {detail}"
        return self.value


# Actions that count as a hospital obtaining access
ACCESS_GRANTING_ACTIONS = (AuditAction.ACCEPTED_REQUEST, AuditAction.EMERGENCY_OVERRIDE)


class AuditLog(AppendOnlyMixin, BaseModel):
    """Audit trail entry for the consent protocol."""

    __tablename__ = "audit_logs"

    patient_id = Column(UUID(), ForeignKey("patients.id"), nullable=False)
    hospital_id = Column(UUID(), ForeignKey("hospitals.id"), nullable=False)
    staff_id = Column(UUID(), ForeignKey("healthcare_staff.id"), nullable=False)
    action = Column(Text, nullable=False)
    action_type = Column(Enum(AuditAction, name="audit_action"), nullable=False)
    flagged = Column(Boolean, nullable=False, default=False)
    checksum = Column(String(64), nullable=False)

    __table_args__ = (
        Index("idx_audit_hospital_time", "hospital_id", "created_at"),
        Index("idx_audit_patient_time", "patient_id", "created_at"),
        Index("idx_audit_action_type", "action_type"),
        Index("idx_audit_flagged", "flagged"),
    )

    def payload(self) -> str:
        """Canonical text the checksum is computed over."""
        return "|".join(
            [
                str(self.id),
                str(self.patient_id),
                str(self.hospital_id),
                str(self.staff_id),
                self.action,
                self.action_type.value,
                "1" if self.flagged else "0",
                ensure_utc(self.created_at).isoformat(),
            ]
        )

    def compute_checksum(self, key: str) -> str:
        """HMAC-SHA256 of the canonical payload."""
        return hmac.new(
            key.encode("utf-8"), self.payload().encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def verify_checksum(self, key: str) -> bool:
        """Check that the stored row still matches its checksum."""
        return hmac.compare_digest(self.checksum or "", self.compute_checksum(key))

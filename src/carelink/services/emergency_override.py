"""Emergency override (break-glass) access.

A tier-3 staff member may grant their hospital access to a patient without the
patient's code, provided they write down why. Because this bypasses consent,
every override is:

- recorded as a Grant of type ``emergency``;
- audited as ``EMERGENCY_OVERRIDE: <reason>`` with the entry flagged;
- opened as an EmergencyReview that another tier-3 staff member must close.

All three rows commit in one transaction.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from carelink.config import Settings
from carelink.core.database import unit_of_work
from carelink.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from carelink.models.access import EmergencyReview, Grant, GrantType, ReviewStatus
from carelink.models.audit_log import AuditAction
from carelink.models.base import utcnow
from carelink.models.patient import Patient
from carelink.models.staff import Capability, HealthcareStaff
from carelink.services.audit_service import AuditLogger
from carelink.services.base import BaseService, parse_id
from carelink.utils.logging import get_logger
from carelink.utils.metrics import emergency_overrides_total
from carelink.utils.retry import retry_on_storage_error

logger = get_logger(__name__)


class EmergencyOverride(BaseService):
    """Privileged grant path that bypasses patient consent."""

    def __init__(
        self,
        session: Session,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """Initialize the override service."""
        super().__init__(session, settings)
        self.audit = audit_logger or AuditLogger(session, self.settings)

    @retry_on_storage_error
    def invoke(self, patient_id: Any, reason: Optional[str], staff: HealthcareStaff) -> Grant:
        """Grant ``staff``'s hospital emergency access to a patient.

        Raises:
            AuthorizationError: staff tier lacks the emergency capability
            ValidationError: missing patient id or reason shorter than required
            NotFoundError: unknown patient
            StorageError: the store stayed unavailable after retries
        """
        if not staff.can(Capability.EMERGENCY_OVERRIDE):
            logger.warning(
                "emergency_override_denied",
                staff_id=str(staff.id),
                role=int(staff.role),
            )
            raise AuthorizationError("Emergency override requires a Level 3 staff role")

        patient_uuid = parse_id(patient_id, "patient_id")
        min_length = self.settings.emergency_reason_min_length
        if reason is None or not reason.strip():
            raise ValidationError(
                "Please provide a detailed reason for the emergency override.",
                field="reason",
            )
        if len(reason) < min_length:
            raise ValidationError(
                f"Emergency reason must be at least {min_length} characters long.",
                field="reason",
            )

        if self.session.get(Patient, patient_uuid) is None:
            raise NotFoundError(f"Patient {patient_uuid} not found")

        with unit_of_work(self.session):
            grant = Grant(
                patient_id=patient_uuid,
                hospital_id=staff.hospital_id,
                staff_id=staff.id,
                grant_type=GrantType.EMERGENCY,
                created_at=utcnow(),
            )
            self.session.add(grant)
            self.session.flush()

            entry = self.audit.record(
                patient_uuid,
                staff.hospital_id,
                staff.id,
                AuditAction.EMERGENCY_OVERRIDE,
                detail=reason,
                flagged=True,
            )

            review = EmergencyReview(
                grant_id=grant.id,
                audit_log_id=entry.id,
                patient_id=patient_uuid,
                hospital_id=staff.hospital_id,
                staff_id=staff.id,
                reason=reason,
                status=ReviewStatus.PENDING,
                created_at=utcnow(),
            )
            self.session.add(review)
            self.session.flush()

        emergency_overrides_total.labels(hospital_id=str(staff.hospital_id)).inc()
        logger.warning(
            "emergency_override_granted",
            grant_id=str(grant.id),
            review_id=str(review.id),
            patient_id=str(patient_uuid),
            hospital_id=str(staff.hospital_id),
            staff_id=str(staff.id),
        )
        return grant

    def list_pending_reviews(self, hospital_id: Any = None) -> List[Dict[str, Any]]:
        """Open emergency reviews, oldest first, optionally for one hospital."""
        query = (
            select(EmergencyReview)
            .where(EmergencyReview.status == ReviewStatus.PENDING)
            .order_by(EmergencyReview.created_at)
        )
        if hospital_id is not None:
            query = query.where(
                EmergencyReview.hospital_id == parse_id(hospital_id, "hospital_id")
            )
        return [review.to_dict() for review in self.session.scalars(query)]

    @retry_on_storage_error
    def complete_review(
        self, review_id: Any, reviewer: HealthcareStaff, notes: Optional[str]
    ) -> EmergencyReview:
        """Close an emergency review.

        Raises:
            AuthorizationError: reviewer is not tier 3, belongs to another
                hospital, or invoked the override themselves
            ValidationError: missing notes
            NotFoundError: unknown review
            ConflictError: review already closed
        """
        review_uuid = parse_id(review_id, "review_id")
        if not reviewer.can(Capability.EMERGENCY_OVERRIDE):
            raise AuthorizationError("Only Level 3 staff may review emergency overrides")
        if notes is None or not notes.strip():
            raise ValidationError("Review notes are required", field="notes")

        with unit_of_work(self.session):
            review = self.session.scalars(
                select(EmergencyReview)
                .where(EmergencyReview.id == review_uuid)
                .with_for_update()
            ).first()
            if review is None:
                raise NotFoundError(f"Emergency review {review_uuid} not found")
            if review.hospital_id != reviewer.hospital_id:
                raise AuthorizationError("Review belongs to another hospital")
            if review.staff_id == reviewer.id:
                raise AuthorizationError("An override cannot be reviewed by its invoker")
            if review.status == ReviewStatus.REVIEWED:
                raise ConflictError("Emergency review already completed")

            review.status = ReviewStatus.REVIEWED
            review.reviewed_by = reviewer.id
            review.reviewed_at = utcnow()
            review.review_notes = notes.strip()
            self.session.flush()

            self.audit.record(
                review.patient_id,
                review.hospital_id,
                reviewer.id,
                AuditAction.EMERGENCY_OVERRIDE_REVIEWED,
            )

        logger.info(
            "emergency_review_completed",
            review_id=str(review.id),
            reviewer_id=str(reviewer.id),
        )
        return review

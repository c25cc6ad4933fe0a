"""Access request service.

A hospital asks for access to a patient's records by creating a
PendingRequest. At most one request may be outstanding per
(hospital, patient); the store's unique constraint is the authority on that,
the pre-insert lookup only produces a friendlier answer in the common case.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carelink.config import Settings
from carelink.core.database import unit_of_work
from carelink.core.exceptions import ConflictError, StorageError, ValidationError
from carelink.models.access import PendingRequest
from carelink.models.audit_log import AuditAction
from carelink.models.base import utcnow
from carelink.models.hospital import Hospital
from carelink.models.patient import Patient
from carelink.models.staff import HealthcareStaff
from carelink.services.audit_service import AuditLogger
from carelink.services.base import BaseService, parse_id
from carelink.services.identity_service import IdentityResolver
from carelink.services.otp_service import OtpIssuer
from carelink.utils.logging import get_logger
from carelink.utils.metrics import consent_requests_total
from carelink.utils.retry import retry_on_storage_error

logger = get_logger(__name__)

PAIR_CONSTRAINT_MARKERS = ("uq_pending_hospital_patient", "hospital_id")


def _is_pair_conflict(exc: IntegrityError) -> bool:
    """Tell a duplicate (hospital, patient) apart from a code collision."""
    message = str(exc.orig)
    return any(marker in message for marker in PAIR_CONSTRAINT_MARKERS)


class AccessRequestService(BaseService):
    """Creates and manages pending access requests."""

    def __init__(
        self,
        session: Session,
        settings: Optional[Settings] = None,
        otp_issuer: Optional[OtpIssuer] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """Initialize the service with its collaborators."""
        super().__init__(session, settings)
        self.otp_issuer = otp_issuer or OtpIssuer(self.settings)
        self.audit = audit_logger or AuditLogger(session, self.settings)
        self.identity = IdentityResolver(session)

    @retry_on_storage_error
    def request_access(self, hospital_id: Any, patient_id: Any, staff_id: Any) -> PendingRequest:
        """Create a pending request for ``patient_id`` on behalf of a hospital.

        Raises:
            AuthenticationError: staff_id does not resolve to a staff member
            ValidationError: missing ids, unknown patient, or staff not in hospital
            ConflictError: a request for this (hospital, patient) is outstanding
            StorageError: the store stayed unavailable after retries
        """
        hospital_uuid = parse_id(hospital_id, "hospital_id")
        patient_uuid = parse_id(patient_id, "patient_id")
        staff_uuid = parse_id(staff_id, "staff_id")

        staff = self.identity.resolve_staff(staff_uuid)
        if staff.hospital_id != hospital_uuid:
            raise ValidationError(
                "Staff member does not belong to the requesting hospital",
                field="hospital_id",
            )
        if self.session.get(Patient, patient_uuid) is None:
            raise ValidationError("Unknown patient", field="patient_id")

        try:
            with unit_of_work(self.session):
                request = self._create(hospital_uuid, patient_uuid, staff)
        except ConflictError:
            consent_requests_total.labels(outcome="conflict").inc()
            logger.info(
                "access_request_conflict",
                hospital_id=str(hospital_uuid),
                patient_id=str(patient_uuid),
            )
            raise

        consent_requests_total.labels(outcome="created").inc()
        logger.info(
            "access_requested",
            request_id=str(request.id),
            hospital_id=str(hospital_uuid),
            patient_id=str(patient_uuid),
            staff_id=str(staff.id),
        )
        return request

    def _create(
        self, hospital_id: UUID, patient_id: UUID, staff: HealthcareStaff
    ) -> PendingRequest:
        existing = self.session.scalars(
            select(PendingRequest)
            .where(
                PendingRequest.hospital_id == hospital_id,
                PendingRequest.patient_id == patient_id,
            )
            .with_for_update()
        ).first()
        if existing is not None:
            if not self._expire_if_stale(existing):
                raise ConflictError(
                    "A request for this patient already exists from your hospital"
                )

        request = PendingRequest(
            patient_id=patient_id,
            hospital_id=hospital_id,
            staff_id=staff.id,
            code=self._unused_code(),
            created_at=utcnow(),
        )
        self.session.add(request)
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            if _is_pair_conflict(e):
                raise ConflictError(
                    "A request for this patient already exists from your hospital"
                ) from e
            # Two requests drew the same code concurrently; a retry draws again
            raise StorageError("Generated code collided with a concurrent request") from e

        self.audit.record(patient_id, hospital_id, staff.id, AuditAction.REQUESTED_DATA)
        return request

    def _unused_code(self) -> str:
        for _ in range(self.settings.otp_max_generation_attempts):
            code = self.otp_issuer.generate()
            taken = self.session.scalar(
                select(PendingRequest.id).where(PendingRequest.code == code)
            )
            if taken is None:
                return code
        raise StorageError("Could not draw an unused code")

    def _expire_if_stale(self, request: PendingRequest) -> bool:
        """Abandon ``request`` if its TTL has lapsed. Returns True if it was removed."""
        if not request.is_expired(self.settings.pending_request_ttl_minutes, utcnow()):
            return False
        result = self.session.execute(
            delete(PendingRequest).where(PendingRequest.id == request.id)
        )
        if result.rowcount != 1:
            return False
        self.session.expunge(request)
        self.audit.record(
            request.patient_id,
            request.hospital_id,
            request.staff_id,
            AuditAction.REQUEST_EXPIRED,
        )
        return True

    @retry_on_storage_error
    def expire_stale(self) -> int:
        """Delete every request older than the configured TTL.

        Each removal is audited as ``REQUEST_EXPIRED``. Does nothing when no
        TTL is configured.
        """
        ttl = self.settings.pending_request_ttl_minutes
        if ttl is None:
            return 0

        cutoff = utcnow() - timedelta(minutes=ttl)
        with unit_of_work(self.session):
            stale = self.session.scalars(
                select(PendingRequest).where(PendingRequest.created_at <= cutoff)
            ).all()
            expired = sum(1 for request in stale if self._expire_if_stale(request))

        if expired:
            logger.info("pending_requests_expired", count=expired, ttl_minutes=ttl)
        return expired

    def list_for_patient(self, patient_id: Any) -> List[Dict[str, Any]]:
        """Pending requests addressed to a patient, newest first.

        This is the patient's inbox, so the code is included.
        """
        patient_uuid = parse_id(patient_id, "patient_id")
        rows = self.session.execute(
            select(PendingRequest, Hospital.name, HealthcareStaff)
            .join(Hospital, Hospital.id == PendingRequest.hospital_id)
            .join(HealthcareStaff, HealthcareStaff.id == PendingRequest.staff_id)
            .where(PendingRequest.patient_id == patient_uuid)
            .order_by(PendingRequest.created_at.desc())
        ).all()

        ttl = self.settings.pending_request_ttl_minutes
        now = utcnow()
        inbox = []
        for request, hospital_name, staff in rows:
            if request.is_expired(ttl, now):
                continue
            item = request.to_dict(include_code=True)
            item["hospital_name"] = hospital_name
            item["staff_name"] = staff.full_name
            inbox.append(item)
        return inbox

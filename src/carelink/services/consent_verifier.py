"""Consent verification.

Redeeming a code turns a PendingRequest into a Grant. The grant insert, the
request delete and the audit entry commit together or not at all. The delete
is checked to have removed exactly one row, so two verifiers racing on the
same code cannot both produce a grant.
"""

from typing import Any, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from carelink.config import Settings
from carelink.core.database import unit_of_work
from carelink.core.exceptions import NotFoundError, ValidationError
from carelink.models.access import Grant, GrantType, PendingRequest
from carelink.models.audit_log import AuditAction
from carelink.models.base import utcnow
from carelink.services.audit_service import AuditLogger
from carelink.services.base import BaseService, parse_id
from carelink.utils.logging import get_logger
from carelink.utils.metrics import consent_verifications_total
from carelink.utils.retry import retry_on_storage_error

logger = get_logger(__name__)

INVALID_CODE_MESSAGE = "OTP not found or invalid"


class ConsentVerifier(BaseService):
    """Redeems one-time codes into permanent grants."""

    def __init__(
        self,
        session: Session,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """Initialize the verifier."""
        super().__init__(session, settings)
        self.audit = audit_logger or AuditLogger(session, self.settings)

    @retry_on_storage_error
    def verify(self, code: Any, patient_id: Any = None, hospital_id: Any = None) -> Grant:
        """Redeem ``code``.

        ``patient_id`` / ``hospital_id`` narrow the lookup to requests addressed
        to that patient or issued by that hospital, so a caller cannot redeem a
        code that was not meant for them.

        Raises:
            ValidationError: blank code
            NotFoundError: no outstanding request carries this code (including
                one that was already redeemed or has expired)
            AuditWriteError: the audit entry could not be written; nothing was
                committed
            StorageError: the store stayed unavailable after retries
        """
        if code is None or not str(code).strip():
            raise ValidationError("OTP is required", field="code")
        code = str(code).strip()
        scope = []
        if patient_id is not None:
            scope.append(PendingRequest.patient_id == parse_id(patient_id, "patient_id"))
        if hospital_id is not None:
            scope.append(PendingRequest.hospital_id == parse_id(hospital_id, "hospital_id"))

        try:
            with unit_of_work(self.session):
                grant = self._redeem(code, scope)
        except NotFoundError:
            consent_verifications_total.labels(outcome="not_found").inc()
            raise

        consent_verifications_total.labels(outcome="granted").inc()
        logger.info(
            "consent_granted",
            grant_id=str(grant.id),
            hospital_id=str(grant.hospital_id),
            patient_id=str(grant.patient_id),
        )
        return grant

    def _redeem(self, code: str, scope: List[Any]) -> Grant:
        request = self.session.scalars(
            select(PendingRequest)
            .where(PendingRequest.code == code, *scope)
            .with_for_update()
        ).first()
        if request is None:
            raise NotFoundError(INVALID_CODE_MESSAGE)
        if request.is_expired(self.settings.pending_request_ttl_minutes, utcnow()):
            raise NotFoundError(INVALID_CODE_MESSAGE)

        grant = Grant(
            patient_id=request.patient_id,
            hospital_id=request.hospital_id,
            staff_id=request.staff_id,
            grant_type=GrantType.CONSENT,
            created_at=utcnow(),
        )
        self.session.add(grant)
        self.session.flush()

        deleted = self.session.execute(
            delete(PendingRequest).where(PendingRequest.id == request.id)
        )
        if deleted.rowcount != 1:
            # Consumed by a concurrent verification; ours must not stand
            raise NotFoundError(INVALID_CODE_MESSAGE)
        self.session.expunge(request)

        self.audit.record(
            grant.patient_id,
            grant.hospital_id,
            grant.staff_id,
            AuditAction.ACCEPTED_REQUEST,
        )
        return grant

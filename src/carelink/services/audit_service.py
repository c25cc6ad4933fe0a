"""Audit trail for the consent protocol.

Every state-changing operation writes exactly one entry through
``AuditLogger.record`` inside its own transaction. The write is flushed
immediately so a failure surfaces before the caller commits; the caller's
unit of work then rolls the whole operation back.
"""

from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from carelink.config import Settings
from carelink.core.database import translate_db_error
from carelink.core.exceptions import AuditWriteError, StorageError
from carelink.models.audit_log import AuditAction, AuditLog
from carelink.models.base import utcnow
from carelink.services.base import BaseService
from carelink.utils.logging import get_logger
from carelink.utils.metrics import audit_write_failures_total

logger = get_logger(__name__)


class AuditLogger(BaseService):
    """Append-only writer and integrity checker for ``audit_logs``."""

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        """Initialize the audit logger."""
        super().__init__(session, settings)
        self._key = self.settings.audit_signing_key

    def record(
        self,
        patient_id: UUID,
        hospital_id: UUID,
        staff_id: UUID,
        action: AuditAction,
        detail: Optional[str] = None,
        flagged: bool = False,
    ) -> AuditLog:
        """Append an audit entry within the caller's transaction.

        Args:
            patient_id: Patient the action concerns
            hospital_id: Hospital on whose behalf the action ran
            staff_id: Staff member who performed the action
            action: Kind of action
            detail: Free text appended to the action, e.g. an emergency reason
            flagged: Mark the entry for compliance review

        Returns:
            The flushed AuditLog row

        Raises:
            StorageError: transient store failure
            AuditWriteError: the entry could not be written
        """
        entry = AuditLog(
            id=uuid4(),
            patient_id=patient_id,
            hospital_id=hospital_id,
            staff_id=staff_id,
            action=action.render(detail),
            action_type=action,
            flagged=flagged,
            created_at=utcnow(),
        )
        entry.checksum = entry.compute_checksum(self._key)

        try:
            self.session.add(entry)
            self.session.flush()
        except SQLAlchemyError as e:
            audit_write_failures_total.labels(action_type=action.value).inc()
            logger.error(
                "audit_write_failed",
                action_type=action.value,
                patient_id=str(patient_id),
                hospital_id=str(hospital_id),
                error=str(e),
            )
            translated = translate_db_error(e)
            if isinstance(translated, StorageError):
                raise translated from e
            raise AuditWriteError(f"Audit entry for {action.value} not written: {e}") from e

        if flagged:
            logger.warning(
                "audit_entry_flagged",
                action_type=action.value,
                patient_id=str(patient_id),
                hospital_id=str(hospital_id),
                staff_id=str(staff_id),
            )
        return entry

    def verify_entry(self, entry: AuditLog) -> bool:
        """Check a stored entry against its checksum."""
        return entry.verify_checksum(self._key)

    def find_tampered(self, limit: Optional[int] = None) -> List[AuditLog]:
        """Return stored entries whose checksum no longer matches."""
        query = select(AuditLog).order_by(AuditLog.created_at)
        if limit:
            query = query.limit(limit)
        tampered = [
            entry for entry in self.session.scalars(query) if not self.verify_entry(entry)
        ]
        if tampered:
            logger.error("audit_tampering_detected", count=len(tampered))
        return tampered

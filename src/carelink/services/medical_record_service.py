"""Medical record service.

Every read and write here is gated on a grant for the staff member's
hospital. Writes additionally need the edit capability, and changing an
existing record is restricted to the hospital that wrote it.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from carelink.config import Settings
from carelink.core.database import unit_of_work
from carelink.core.exceptions import AuthorizationError, ValidationError
from carelink.models.audit_log import AuditAction
from carelink.models.base import utcnow
from carelink.models.hospital import Hospital
from carelink.models.medical_record import CLINICAL_FIELDS, MedicalRecord
from carelink.models.patient import Patient
from carelink.models.staff import Capability, HealthcareStaff
from carelink.services.access_query_service import AccessQueryService
from carelink.services.audit_service import AuditLogger
from carelink.services.base import BaseService, parse_id
from carelink.utils.logging import get_logger
from carelink.utils.retry import retry_on_storage_error

logger = get_logger(__name__)

MAX_SEARCH_RESULTS = 100


class MedicalRecordService(BaseService):
    """Patient search and grant-gated medical record management."""

    def __init__(
        self,
        session: Session,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """Initialize the service."""
        super().__init__(session, settings)
        self.audit = audit_logger or AuditLogger(session, self.settings)
        self.access = AccessQueryService(session, self.settings)

    def search_patients(self, query: Optional[str], limit: int = MAX_SEARCH_RESULTS) -> List[Dict[str, Any]]:
        """Case-insensitive substring search over name, email and phone."""
        if query is None or not query.strip():
            raise ValidationError("Search query is required", field="query")
        limit = max(1, min(limit, MAX_SEARCH_RESULTS))

        pattern = f"%{query.strip()}%"
        patients = self.session.scalars(
            select(Patient)
            .where(
                or_(
                    Patient.first_name.ilike(pattern),
                    Patient.last_name.ilike(pattern),
                    Patient.email.ilike(pattern),
                    Patient.contact_num.ilike(pattern),
                )
            )
            .order_by(Patient.last_name, Patient.first_name)
            .limit(limit)
        )
        return [patient.summary() for patient in patients]

    def patient_history(self, staff: HealthcareStaff, patient_id: Any) -> Dict[str, Any]:
        """Patient details and full record history, for a granted hospital.

        Returns:
            ``{"patient": ..., "records": [...], "hospitals": {id: name}}``
        """
        patient_uuid = parse_id(patient_id, "patient_id")
        self.access.require_access(staff.hospital_id, patient_uuid)
        patient = self._get_or_404(Patient, patient_uuid)

        records = self._records(patient_uuid)
        hospital_ids = {record.hospital_id for record in records}
        hospitals = {}
        if hospital_ids:
            hospitals = {
                str(hospital_id): name
                for hospital_id, name in self.session.execute(
                    select(Hospital.id, Hospital.name).where(Hospital.id.in_(hospital_ids))
                )
            }

        return {
            "patient": patient.summary(),
            "records": [record.to_dict() for record in records],
            "hospitals": hospitals,
        }

    def records_for_patient(self, patient_id: Any) -> List[Dict[str, Any]]:
        """A patient's own record history, newest first."""
        patient_uuid = parse_id(patient_id, "patient_id")
        return [record.to_dict() for record in self._records(patient_uuid)]

    @retry_on_storage_error
    def create_record(
        self, staff: HealthcareStaff, patient_id: Any, fields: Optional[Dict[str, Any]]
    ) -> MedicalRecord:
        """Add a record for a patient the staff member's hospital may access."""
        patient_uuid = parse_id(patient_id, "patient_id")
        self._require_editor(staff)
        values = _clean_fields(fields)
        self.access.require_access(staff.hospital_id, patient_uuid)

        with unit_of_work(self.session):
            record = MedicalRecord(
                patient_id=patient_uuid,
                hospital_id=staff.hospital_id,
                staff_id=staff.id,
                created_at=utcnow(),
                **values,
            )
            self.session.add(record)
            self.session.flush()
            self.audit.record(
                patient_uuid, staff.hospital_id, staff.id, AuditAction.CREATED_NEW_RECORD
            )

        logger.info(
            "medical_record_created",
            record_id=str(record.id),
            patient_id=str(patient_uuid),
            hospital_id=str(staff.hospital_id),
        )
        return record

    @retry_on_storage_error
    def update_record(
        self, staff: HealthcareStaff, record_id: Any, fields: Optional[Dict[str, Any]]
    ) -> MedicalRecord:
        """Change clinical fields of a record written by the staff's hospital."""
        record_uuid = parse_id(record_id, "record_id")
        self._require_editor(staff)
        values = _clean_fields(fields)

        with unit_of_work(self.session):
            record = self._editable_record(staff, record_uuid)
            for name, value in values.items():
                setattr(record, name, value)
            record.updated_at = utcnow()
            self.session.flush()
            self.audit.record(
                record.patient_id, staff.hospital_id, staff.id, AuditAction.UPDATED_RECORD
            )

        logger.info(
            "medical_record_updated",
            record_id=str(record.id),
            fields=sorted(values),
            hospital_id=str(staff.hospital_id),
        )
        return record

    @retry_on_storage_error
    def delete_record(self, staff: HealthcareStaff, record_id: Any) -> None:
        """Remove a record written by the staff's hospital."""
        record_uuid = parse_id(record_id, "record_id")
        self._require_editor(staff)

        with unit_of_work(self.session):
            record = self._editable_record(staff, record_uuid)
            patient_id = record.patient_id
            self.session.delete(record)
            self.session.flush()
            self.audit.record(
                patient_id, staff.hospital_id, staff.id, AuditAction.DELETED_RECORD
            )

        logger.info(
            "medical_record_deleted",
            record_id=str(record_uuid),
            hospital_id=str(staff.hospital_id),
        )

    def _records(self, patient_id: UUID) -> List[MedicalRecord]:
        return list(
            self.session.scalars(
                select(MedicalRecord)
                .where(MedicalRecord.patient_id == patient_id)
                .order_by(MedicalRecord.created_at.desc())
            )
        )

    def _require_editor(self, staff: HealthcareStaff) -> None:
        if not staff.can(Capability.EDIT):
            raise AuthorizationError("Your role does not allow editing medical records")

    def _editable_record(self, staff: HealthcareStaff, record_id: UUID) -> MedicalRecord:
        record = self._get_or_404(MedicalRecord, record_id)
        self.access.require_access(staff.hospital_id, record.patient_id)
        if record.hospital_id != staff.hospital_id:
            raise AuthorizationError("Only the hospital that wrote a record may change it")
        return record


def _clean_fields(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Reject anything that is not a clinical field; coerce ``doctor_id``."""
    fields = dict(fields or {})
    unknown = sorted(set(fields) - CLINICAL_FIELDS)
    if unknown:
        raise ValidationError(
            f"Unknown medical record fields: {', '.join(unknown)}", field=unknown[0]
        )
    if fields.get("doctor_id") is not None:
        fields["doctor_id"] = parse_id(fields["doctor_id"], "doctor_id")
    return fields

"""Read-only questions about who may see whose records."""

from typing import Any, Dict, List

from sqlalchemy import exists, select

from carelink.core.exceptions import AuthorizationError
from carelink.models.access import Grant
from carelink.models.hospital import Hospital
from carelink.models.patient import Patient
from carelink.services.base import BaseService, parse_id


class AccessQueryService(BaseService):
    """Answers grant lookups for the record services and dashboards."""

    def has_access(self, hospital_id: Any, patient_id: Any) -> bool:
        """Check whether any grant exists for (hospital, patient)."""
        hospital_uuid = parse_id(hospital_id, "hospital_id")
        patient_uuid = parse_id(patient_id, "patient_id")
        return bool(
            self.session.scalar(
                select(
                    exists().where(
                        Grant.hospital_id == hospital_uuid,
                        Grant.patient_id == patient_uuid,
                    )
                )
            )
        )

    def require_access(self, hospital_id: Any, patient_id: Any) -> None:
        """Raise AuthorizationError unless the hospital holds a grant."""
        if not self.has_access(hospital_id, patient_id):
            raise AuthorizationError(
                "Your hospital has not been granted access to this patient's data"
            )

    def granted_patients(self, hospital_id: Any) -> List[Dict[str, Any]]:
        """Patients the hospital may access, each listed once."""
        hospital_uuid = parse_id(hospital_id, "hospital_id")
        granted = select(Grant.patient_id).where(Grant.hospital_id == hospital_uuid)
        patients = self.session.scalars(
            select(Patient)
            .where(Patient.id.in_(granted))
            .order_by(Patient.last_name, Patient.first_name)
        )
        return [patient.summary() for patient in patients]

    def grants_for_patient(self, patient_id: Any) -> List[Dict[str, Any]]:
        """Grants on a patient's data, newest first, with hospital names."""
        patient_uuid = parse_id(patient_id, "patient_id")
        rows = self.session.execute(
            select(Grant, Hospital.name)
            .join(Hospital, Hospital.id == Grant.hospital_id)
            .where(Grant.patient_id == patient_uuid)
            .order_by(Grant.created_at.desc())
        ).all()

        result = []
        for grant, hospital_name in rows:
            item = grant.to_dict()
            item["hospital_name"] = hospital_name
            result.append(item)
        return result

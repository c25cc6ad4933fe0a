"""Tests for MedicalRecordService: search, history and grant-gated CRUD."""

import uuid

import pytest

from carelink.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from carelink.models import AuditAction, AuditLog, MedicalRecord, RoleTier
from carelink.services.medical_record_service import MedicalRecordService

VITALS = {"blood_pressure": "120/80", "height": "170cm", "weight": "65kg", "smoking": False}


@pytest.fixture
def records(db_session, settings):
    """MedicalRecordService on the test session."""
    return MedicalRecordService(db_session, settings)


@pytest.fixture
def granted(editor, patient, grant_for):
    """The editor's hospital holds a grant for the patient."""
    return grant_for(editor, patient)


class TestSearch:
    """Patient search."""

    def test_matches_name_email_and_phone(self, records, make_patient):
        """Test substring matches are case-insensitive across fields."""
        lara = make_patient(first_name="Lara", last_name="Aquino", email="lara@clinic.ph")
        make_patient(first_name="Miguel", last_name="Bautista", contact_num="09998887777")

        assert [p["id"] for p in records.search_patients("aqui")] == [str(lara.id)]
        assert [p["id"] for p in records.search_patients("LARA@")] == [str(lara.id)]
        assert [p["last_name"] for p in records.search_patients("99988")] == ["Bautista"]

    def test_limit(self, records, make_patient):
        """Test results are capped."""
        for _ in range(5):
            make_patient(last_name="Garcia")
        assert len(records.search_patients("garcia", limit=3)) == 3

    def test_blank_query_rejected(self, records):
        """Test an empty query is a validation error."""
        with pytest.raises(ValidationError):
            records.search_patients("  ")


class TestCreate:
    """Creating records."""

    @pytest.mark.audit_required
    def test_editor_with_grant(self, records, editor, patient, granted, count_rows):
        """Test a tier 2 editor with a grant creates a record and an audit entry."""
        record = records.create_record(editor, patient.id, VITALS)

        assert record.hospital_id == editor.hospital_id
        assert record.staff_id == editor.id
        assert record.blood_pressure == "120/80"
        assert count_rows(AuditLog, AuditLog.action_type == AuditAction.CREATED_NEW_RECORD) == 1

    def test_without_grant(self, records, editor, patient, count_rows):
        """Test no grant means no record."""
        with pytest.raises(AuthorizationError):
            records.create_record(editor, patient.id, VITALS)
        assert count_rows(MedicalRecord) == 0

    def test_read_only_staff(self, records, reader, patient, grant_for):
        """Test tier 1 staff cannot write even with a grant."""
        grant_for(reader, patient)
        with pytest.raises(AuthorizationError):
            records.create_record(reader, patient.id, VITALS)

    def test_unknown_field(self, records, editor, patient, granted):
        """Test fields outside the clinical set are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            records.create_record(editor, patient.id, {"hospital_id": str(uuid.uuid4())})
        assert exc_info.value.field == "hospital_id"

    def test_doctor_id_coerced(self, records, editor, patient, granted):
        """Test doctor_id accepts a string UUID."""
        doctor = uuid.uuid4()
        record = records.create_record(editor, patient.id, {"doctor_id": str(doctor)})
        assert record.doctor_id == doctor


class TestUpdateDelete:
    """Changing records is restricted to the writing hospital."""

    @pytest.fixture
    def record(self, records, editor, patient, granted):
        return records.create_record(editor, patient.id, VITALS)

    @pytest.mark.audit_required
    def test_update(self, records, editor, record, count_rows):
        """Test the writing hospital can update with an audit entry."""
        updated = records.update_record(editor, record.id, {"assessment": "Stable"})

        assert updated.assessment == "Stable"
        assert updated.blood_pressure == "120/80"
        assert count_rows(AuditLog, AuditLog.action_type == AuditAction.UPDATED_RECORD) == 1

    def test_update_by_other_hospital_with_grant(
        self, records, record, patient, make_staff, other_hospital, grant_for
    ):
        """Test provenance: a granted hospital cannot change another's record."""
        outsider = make_staff(other_hospital, RoleTier.EMERGENCY)
        grant_for(outsider, patient)

        with pytest.raises(AuthorizationError):
            records.update_record(outsider, record.id, {"notes": "overwritten"})

    def test_update_unknown_record(self, records, editor, granted):
        """Test NotFound for a missing record."""
        with pytest.raises(NotFoundError):
            records.update_record(editor, uuid.uuid4(), {"notes": "x"})

    @pytest.mark.audit_required
    def test_delete(self, records, editor, record, count_rows):
        """Test the writing hospital can delete with an audit entry."""
        records.delete_record(editor, record.id)

        assert count_rows(MedicalRecord) == 0
        assert count_rows(AuditLog, AuditLog.action_type == AuditAction.DELETED_RECORD) == 1

    def test_delete_by_read_only_staff(self, records, reader, record):
        """Test tier 1 staff of the writing hospital cannot delete."""
        with pytest.raises(AuthorizationError):
            records.delete_record(reader, record.id)


class TestHistory:
    """Reading records."""

    def test_patient_history_requires_grant(self, records, editor, patient):
        """Test history is refused without a grant."""
        with pytest.raises(AuthorizationError):
            records.patient_history(editor, patient.id)

    def test_patient_history(self, records, editor, patient, granted):
        """Test history returns patient, records and hospital names."""
        records.create_record(editor, patient.id, VITALS)

        history = records.patient_history(editor, patient.id)

        assert history["patient"]["id"] == str(patient.id)
        assert len(history["records"]) == 1
        assert history["hospitals"] == {str(editor.hospital_id): "St. Luke's Medical Center"}

    def test_records_for_patient(self, records, editor, patient, granted, make_patient):
        """Test a patient sees only their own records."""
        records.create_record(editor, patient.id, VITALS)
        assert len(records.records_for_patient(patient.id)) == 1
        assert records.records_for_patient(make_patient().id) == []

"""Tests for ConsentVerifier: atomic redemption of codes into grants."""

from datetime import timedelta

import pytest

from carelink.core.exceptions import AuditWriteError, NotFoundError, ValidationError
from carelink.models import AuditAction, AuditLog, Grant, GrantType, PendingRequest
from carelink.models.base import utcnow
from carelink.services.access_request_service import AccessRequestService
from carelink.services.audit_service import AuditLogger
from carelink.services.consent_verifier import ConsentVerifier
from tests.conftest import make_settings


@pytest.fixture
def verifier(db_session, settings):
    """ConsentVerifier on the test session."""
    return ConsentVerifier(db_session, settings)


@pytest.fixture
def pending(db_session, settings, hospital, editor, patient):
    """An outstanding request for (hospital, patient)."""
    return AccessRequestService(db_session, settings).request_access(
        hospital.id, patient.id, editor.id
    )


class TestVerify:
    """Successful and unsuccessful redemption."""

    @pytest.mark.audit_required
    def test_valid_code_creates_grant(self, verifier, pending, count_rows):
        """Test one grant, request gone, one ACCEPTED_REQUEST entry."""
        grant = verifier.verify(pending.code)

        assert grant.patient_id == pending.patient_id
        assert grant.hospital_id == pending.hospital_id
        assert grant.staff_id == pending.staff_id
        assert grant.grant_type == GrantType.CONSENT
        assert count_rows(Grant) == 1
        assert count_rows(PendingRequest) == 0
        assert count_rows(AuditLog, AuditLog.action_type == AuditAction.ACCEPTED_REQUEST) == 1

    def test_code_is_single_use(self, verifier, pending, count_rows):
        """Test a repeated verify with the same code returns NotFound."""
        verifier.verify(pending.code)

        with pytest.raises(NotFoundError):
            verifier.verify(pending.code)
        assert count_rows(Grant) == 1

    def test_surrounding_whitespace_ignored(self, verifier, pending):
        """Test codes are trimmed before lookup."""
        assert verifier.verify(f"  {pending.code} ") is not None

    def test_unknown_code_has_no_side_effects(self, verifier, pending, count_rows):
        """Test NotFound leaves grants, requests and audit entries untouched."""
        wrong = "000000" if pending.code != "000000" else "111111"
        audit_before = count_rows(AuditLog)

        with pytest.raises(NotFoundError):
            verifier.verify(wrong)

        assert count_rows(Grant) == 0
        assert count_rows(PendingRequest) == 1
        assert count_rows(AuditLog) == audit_before

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_blank_code_rejected(self, verifier, code):
        """Test a missing code raises ValidationError."""
        with pytest.raises(ValidationError):
            verifier.verify(code)


class TestScopedVerify:
    """Redemption can be narrowed to the patient or hospital of the caller."""

    def test_other_patient_cannot_redeem(self, verifier, pending, make_patient, count_rows):
        """Test a code addressed to another patient is NotFound."""
        with pytest.raises(NotFoundError):
            verifier.verify(pending.code, patient_id=make_patient().id)
        assert count_rows(PendingRequest) == 1

    def test_owning_patient_can_redeem(self, verifier, pending):
        """Test the addressed patient may redeem the code."""
        assert verifier.verify(pending.code, patient_id=pending.patient_id) is not None

    def test_other_hospital_cannot_redeem(self, verifier, pending, other_hospital):
        """Test staff of another hospital cannot redeem the code."""
        with pytest.raises(NotFoundError):
            verifier.verify(pending.code, hospital_id=other_hospital.id)


class TestAtomicity:
    """Nothing partial is observable when a step fails."""

    @pytest.mark.audit_required
    def test_audit_failure_rolls_back_grant(self, db_session, settings, pending, count_rows, monkeypatch):
        """Test a failed audit write leaves no grant and keeps the request."""

        def failing_record(*args, **kwargs):
            raise AuditWriteError("audit store rejected entry")

        audit = AuditLogger(db_session, settings)
        monkeypatch.setattr(audit, "record", failing_record)
        verifier = ConsentVerifier(db_session, settings, audit_logger=audit)

        with pytest.raises(AuditWriteError):
            verifier.verify(pending.code)

        assert count_rows(Grant) == 0
        assert count_rows(PendingRequest) == 1
        assert count_rows(AuditLog, AuditLog.action_type == AuditAction.ACCEPTED_REQUEST) == 0

    def test_request_can_be_redeemed_after_failed_attempt(
        self, db_session, settings, pending, monkeypatch
    ):
        """Test the request survives a failed redemption and can be retried."""
        audit = AuditLogger(db_session, settings)
        original = audit.record
        failures = []

        def fail_once(*args, **kwargs):
            if not failures:
                failures.append(True)
                raise AuditWriteError("transient audit failure")
            return original(*args, **kwargs)

        monkeypatch.setattr(audit, "record", fail_once)
        verifier = ConsentVerifier(db_session, settings, audit_logger=audit)

        with pytest.raises(AuditWriteError):
            verifier.verify(pending.code)
        assert verifier.verify(pending.code) is not None


class TestExpiredCodes:
    """Codes of expired requests cannot be redeemed."""

    def test_expired_request_not_redeemable(self, db_session, pending, count_rows):
        """Test a code past the TTL returns NotFound and creates no grant."""
        pending.created_at = utcnow() - timedelta(minutes=90)
        db_session.commit()
        verifier = ConsentVerifier(db_session, make_settings(pending_request_ttl_minutes=60))

        with pytest.raises(NotFoundError):
            verifier.verify(pending.code)
        assert count_rows(Grant) == 0

    def test_fresh_request_redeemable_with_ttl(self, db_session, pending):
        """Test a request within the TTL is redeemed normally."""
        verifier = ConsentVerifier(db_session, make_settings(pending_request_ttl_minutes=60))
        assert verifier.verify(pending.code) is not None

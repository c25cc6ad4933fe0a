"""Consent lifecycle from request to emergency override, through the gateway."""

import pytest
from sqlalchemy import select

from carelink.core.exceptions import ErrorKind
from carelink.gateway import AccessGateway
from carelink.models import AuditAction, AuditLog, Grant, GrantType, PendingRequest, RoleTier

REASON = "Patient unresponsive, ER."


@pytest.mark.audit_required
@pytest.mark.emergency_access
def test_consent_then_emergency_override(db_session, settings, hospital, make_staff, patient, count_rows):
    """Request, three wrong codes, the right code, then an emergency override."""
    gateway = AccessGateway(db_session, settings)
    requester = make_staff(hospital, RoleTier.EDIT, "Ana", "Reyes")
    responder = make_staff(hospital, RoleTier.EMERGENCY, "Carlo", "Santos")

    # Hospital asks; the code only shows up in the patient's inbox
    request = gateway.request_access(requester.id, hospital.id, patient.id).unwrap()
    assert "code" not in request
    [pending] = gateway.pending_requests_for_patient(patient.id).unwrap()
    code = pending["code"]
    assert count_rows(AuditLog, AuditLog.action_type == AuditAction.REQUESTED_DATA) == 1

    wrong = f"{(int(code) + 1) % 10 ** len(code):0{len(code)}d}"
    for _ in range(3):
        result = gateway.verify_otp(patient.id, wrong)
        assert result.error.kind == ErrorKind.NOT_FOUND
    assert count_rows(PendingRequest) == 1
    assert count_rows(Grant) == 0

    grant = gateway.verify_otp(patient.id, code).unwrap()
    assert grant["grant_type"] == "consent"
    assert count_rows(PendingRequest) == 0
    assert count_rows(AuditLog, AuditLog.action_type == AuditAction.ACCEPTED_REQUEST) == 1

    gateway.emergency_override(responder.id, patient.id, REASON).unwrap()

    override_entry = db_session.scalars(
        select(AuditLog).where(AuditLog.action_type == AuditAction.EMERGENCY_OVERRIDE)
    ).one()
    assert override_entry.action == f"EMERGENCY_OVERRIDE: {REASON}"
    assert override_entry.flagged is True

    grants = db_session.scalars(
        select(Grant).where(Grant.hospital_id == hospital.id, Grant.patient_id == patient.id)
    ).all()
    assert sorted(g.grant_type.value for g in grants) == [
        GrantType.CONSENT.value,
        GrantType.EMERGENCY.value,
    ]
    assert count_rows(PendingRequest) == 0
    assert count_rows(AuditLog) == 3
    assert gateway.has_access(requester.id, hospital.id, patient.id).unwrap() is True

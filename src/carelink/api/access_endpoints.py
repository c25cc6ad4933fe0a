"""Consent protocol REST endpoints.

Access requests, code redemption, emergency override and grant lookups.
"""

import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Query, status

from carelink.api.dependencies import gateway_dependency, subject_dependency
from carelink.api.exceptions import unwrap_result
from carelink.api.schemas import (
    AccessRequestCreate,
    EmergencyOverrideRequest,
    OtpVerifyRequest,
)
from carelink.gateway import AccessGateway

router = APIRouter(tags=["access"])


@router.post("/access-requests", status_code=status.HTTP_201_CREATED)
def request_access(
    body: AccessRequestCreate,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Create a pending request; the code goes to the patient's inbox only."""
    return unwrap_result(gateway.request_access(subject_id, body.hospital_id, body.patient_id))


@router.get("/access-requests/inbox")
def pending_requests(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """The calling patient's outstanding requests, with codes."""
    return unwrap_result(gateway.pending_requests_for_patient(subject_id))


@router.post("/access-requests/verify", status_code=status.HTTP_201_CREATED)
def verify_otp(
    body: OtpVerifyRequest,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Redeem a code into a grant."""
    return unwrap_result(gateway.verify_otp(subject_id, body.code))


@router.post("/access-requests/expire")
def expire_stale_requests(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, int]:
    """Remove requests older than the configured TTL."""
    return {"expired": unwrap_result(gateway.expire_stale_requests(subject_id))}


@router.post("/emergency-override", status_code=status.HTTP_201_CREATED)
def emergency_override(
    body: EmergencyOverrideRequest,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Grant access without patient consent (Level 3 staff only)."""
    return unwrap_result(gateway.emergency_override(subject_id, body.patient_id, body.reason))


@router.get("/access/check")
def has_access(
    hospital_id: uuid.UUID = Query(...),
    patient_id: uuid.UUID = Query(...),
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, bool]:
    """Whether a hospital holds a grant for a patient."""
    return {"has_access": unwrap_result(gateway.has_access(subject_id, hospital_id, patient_id))}


@router.get("/access/grants")
def grants_for_patient(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Hospitals the calling patient has granted access to."""
    return unwrap_result(gateway.grants_for_patient(subject_id))


@router.get("/access/patients")
def granted_patients(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Patients the caller's hospital may access."""
    return unwrap_result(gateway.granted_patients(subject_id))

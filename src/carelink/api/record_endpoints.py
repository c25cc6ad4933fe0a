"""Patient search and medical record endpoints."""

import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Query, status

from carelink.api.dependencies import gateway_dependency, subject_dependency
from carelink.api.exceptions import unwrap_result
from carelink.api.schemas import RecordCreateRequest, RecordFields
from carelink.gateway import AccessGateway

router = APIRouter(tags=["records"])


@router.get("/patients/search")
def search_patients(
    q: str = Query(..., description="Name, email or phone fragment"),
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Search patients."""
    return unwrap_result(gateway.search_patients(subject_id, q))


@router.get("/patients/{patient_id}/history")
def patient_history(
    patient_id: uuid.UUID,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Patient details and records for a hospital holding a grant."""
    return unwrap_result(gateway.patient_history(subject_id, patient_id))


@router.get("/me/records")
def medical_history(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """The calling patient's own records."""
    return unwrap_result(gateway.medical_history(subject_id))


@router.post("/records", status_code=status.HTTP_201_CREATED)
def create_record(
    body: RecordCreateRequest,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Write a new medical record."""
    return unwrap_result(
        gateway.create_record(subject_id, body.patient_id, body.clinical_fields())
    )


@router.patch("/records/{record_id}")
def update_record(
    record_id: uuid.UUID,
    body: RecordFields,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Change a record written by the caller's hospital."""
    return unwrap_result(
        gateway.update_record(subject_id, record_id, body.model_dump(exclude_unset=True))
    )


@router.delete("/records/{record_id}")
def delete_record(
    record_id: uuid.UUID,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, str]:
    """Delete a record written by the caller's hospital."""
    return {"deleted": unwrap_result(gateway.delete_record(subject_id, record_id))}

"""Emergency override review endpoints."""

import uuid
from typing import Any, Dict, List

from fastapi import APIRouter

from carelink.api.dependencies import gateway_dependency, subject_dependency
from carelink.api.exceptions import unwrap_result
from carelink.api.schemas import ReviewCompleteRequest
from carelink.gateway import AccessGateway

router = APIRouter(prefix="/emergency-reviews", tags=["emergency-reviews"])


@router.get("")
def list_emergency_reviews(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Open reviews for the caller's hospital."""
    return unwrap_result(gateway.list_emergency_reviews(subject_id))


@router.post("/{review_id}/complete")
def complete_emergency_review(
    review_id: uuid.UUID,
    body: ReviewCompleteRequest,
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, Any]:
    """Close a review with notes."""
    return unwrap_result(gateway.complete_emergency_review(subject_id, review_id, body.notes))

"""Hospital dashboard endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Query

from carelink.api.dependencies import gateway_dependency, subject_dependency
from carelink.api.exceptions import unwrap_result
from carelink.gateway import AccessGateway

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/audit-logs")
def get_audit_logs(
    limit: int = Query(10, ge=1, le=500),
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Latest audit entries of the caller's hospital."""
    return unwrap_result(gateway.get_audit_logs(subject_id, limit=limit))


@router.get("/stats")
def get_dashboard_stats(
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> Dict[str, int]:
    """Today's requests, acceptances and actions; this week's record writes."""
    return unwrap_result(gateway.get_dashboard_stats(subject_id))


@router.get("/activity")
def get_recent_activity(
    limit: int = Query(5, ge=1, le=50),
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Latest requests and acceptances."""
    return unwrap_result(gateway.get_recent_activity(subject_id, limit=limit))


@router.get("/time-series")
def get_time_series(
    hours: int = Query(24, ge=1, le=168),
    subject_id: str = subject_dependency,
    gateway: AccessGateway = gateway_dependency,
) -> List[Dict[str, Any]]:
    """Hourly request and acceptance counts."""
    return unwrap_result(gateway.get_time_series(subject_id, hours=hours))

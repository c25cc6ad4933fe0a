"""Service layer for the consent protocol."""

from .access_query_service import AccessQueryService
from .access_request_service import AccessRequestService
from .audit_service import AuditLogger
from .base import BaseService
from .consent_verifier import ConsentVerifier
from .dashboard_service import DashboardService
from .emergency_override import EmergencyOverride
from .identity_service import IdentityResolver
from .medical_record_service import MedicalRecordService
from .otp_service import OtpIssuer

__all__ = [
    "BaseService",
    "AuditLogger",
    "OtpIssuer",
    "IdentityResolver",
    "AccessRequestService",
    "ConsentVerifier",
    "EmergencyOverride",
    "AccessQueryService",
    "MedicalRecordService",
    "DashboardService",
]

"""Caller-facing entry points of the consent protocol.

Each operation takes the identity provider's subject id for the caller,
resolves it to a staff member or patient, runs the matching service and wraps
the outcome in an ``OperationResult``: either a value or exactly one error
kind, never both.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from carelink.config import Settings, get_settings
from carelink.core.database import translate_db_error
from carelink.core.exceptions import (
    AuthorizationError,
    CareLinkError,
    ErrorKind,
)
from carelink.models.staff import Capability, HealthcareStaff
from carelink.services.access_query_service import AccessQueryService
from carelink.services.access_request_service import AccessRequestService
from carelink.services.base import parse_id
from carelink.services.consent_verifier import ConsentVerifier
from carelink.services.dashboard_service import DashboardService
from carelink.services.emergency_override import EmergencyOverride
from carelink.services.identity_service import IdentityResolver
from carelink.services.medical_record_service import MedicalRecordService
from carelink.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OperationError:
    """The error half of an OperationResult."""

    kind: ErrorKind
    message: str
    code: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: CareLinkError) -> "OperationError":
        """Build from a raised protocol error."""
        return cls(kind=exc.kind, message=exc.message, code=exc.code)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Success value XOR error.

    Raises:
        ValueError: on construction with both or neither set
    """

    value: Optional[T] = None
    error: Optional[OperationError] = None

    def __post_init__(self) -> None:
        """Enforce that exactly one side is set."""
        if (self.value is None) == (self.error is None):
            raise ValueError("OperationResult needs exactly one of value or error")

    @classmethod
    def ok(cls, value: T) -> "OperationResult[T]":
        """Successful result."""
        return cls(value=value)

    @classmethod
    def fail(cls, error: OperationError) -> "OperationResult[T]":
        """Failed result."""
        return cls(error=error)

    @property
    def succeeded(self) -> bool:
        """Whether the operation produced a value."""
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise ValueError for a failed result."""
        if self.error is not None:
            raise ValueError(f"{self.error.kind.value}: {self.error.message}")
        return self.value  # type: ignore[return-value]


class AccessGateway:
    """Operations exposed to the presentation layer."""

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        """Initialize the gateway and its services on one session."""
        self.session = session
        self.settings = settings or get_settings()
        self.identity = IdentityResolver(session)
        self.requests = AccessRequestService(session, self.settings)
        self.verifier = ConsentVerifier(session, self.settings)
        self.emergency = EmergencyOverride(session, self.settings)
        self.access = AccessQueryService(session, self.settings)
        self.records = MedicalRecordService(session, self.settings)
        self.dashboard = DashboardService(session, self.settings)

    def _run(self, operation: str, call: Callable[[], T]) -> OperationResult[T]:
        try:
            return OperationResult.ok(call())
        except CareLinkError as e:
            error = OperationError.from_exception(e)
        except SQLAlchemyError as e:
            self.session.rollback()
            error = OperationError.from_exception(translate_db_error(e))

        if error.kind in (ErrorKind.STORAGE, ErrorKind.INTEGRITY):
            logger.error(
                "operation_failed",
                operation=operation,
                error_kind=error.kind.value,
                error=error.message,
            )
        else:
            logger.info(
                "operation_rejected",
                operation=operation,
                error_kind=error.kind.value,
                error=error.message,
            )
        return OperationResult.fail(error)

    def _staff(self, subject_id: Any) -> HealthcareStaff:
        return self.identity.resolve_staff(subject_id)

    # Consent protocol

    def request_access(
        self, subject_id: Any, hospital_id: Any, patient_id: Any
    ) -> OperationResult[Dict[str, Any]]:
        """Staff asks for access to a patient on behalf of their hospital."""

        def call() -> Dict[str, Any]:
            staff = self._staff(subject_id)
            request = self.requests.request_access(hospital_id, patient_id, staff.id)
            return request.to_dict()

        return self._run("request_access", call)

    def verify_otp(self, subject_id: Any, code: Any) -> OperationResult[Dict[str, Any]]:
        """Redeem a code.

        A patient may only redeem codes addressed to them; staff only codes
        issued for their own hospital.
        """

        def call() -> Dict[str, Any]:
            actor = self.identity.resolve_actor(subject_id)
            if isinstance(actor, HealthcareStaff):
                grant = self.verifier.verify(code, hospital_id=actor.hospital_id)
            else:
                grant = self.verifier.verify(code, patient_id=actor.id)
            return grant.to_dict()

        return self._run("verify_otp", call)

    def emergency_override(
        self, subject_id: Any, patient_id: Any, reason: Optional[str]
    ) -> OperationResult[Dict[str, Any]]:
        """Break-glass grant for a tier-3 staff member."""

        def call() -> Dict[str, Any]:
            grant = self.emergency.invoke(patient_id, reason, self._staff(subject_id))
            return grant.to_dict()

        return self._run("emergency_override", call)

    def has_access(
        self, subject_id: Any, hospital_id: Any, patient_id: Any
    ) -> OperationResult[bool]:
        """Whether the caller's own hospital holds a grant for ``patient_id``."""

        def call() -> bool:
            staff = self._staff(subject_id)
            if parse_id(hospital_id, "hospital_id") != staff.hospital_id:
                raise AuthorizationError("Staff may only check access for their own hospital")
            return self.access.has_access(hospital_id, patient_id)

        return self._run("has_access", call)

    def pending_requests_for_patient(self, subject_id: Any) -> OperationResult[List[Dict[str, Any]]]:
        """The calling patient's inbox of outstanding requests and their codes."""

        def call() -> List[Dict[str, Any]]:
            patient = self.identity.resolve_patient(subject_id)
            return self.requests.list_for_patient(patient.id)

        return self._run("pending_requests_for_patient", call)

    def grants_for_patient(self, subject_id: Any) -> OperationResult[List[Dict[str, Any]]]:
        """Hospitals the calling patient has granted access to."""

        def call() -> List[Dict[str, Any]]:
            patient = self.identity.resolve_patient(subject_id)
            return self.access.grants_for_patient(patient.id)

        return self._run("grants_for_patient", call)

    def granted_patients(self, subject_id: Any) -> OperationResult[List[Dict[str, Any]]]:
        """Patients the caller's hospital may access."""

        def call() -> List[Dict[str, Any]]:
            return self.access.granted_patients(self._staff(subject_id).hospital_id)

        return self._run("granted_patients", call)

    def expire_stale_requests(self, subject_id: Any = None) -> OperationResult[int]:
        """Sweep requests past their TTL.

        Schedulers call this without a subject; over HTTP the caller must be
        a staff member.
        """

        def call() -> int:
            if subject_id is not None:
                self._staff(subject_id)
            return self.requests.expire_stale()

        return self._run("expire_stale_requests", call)

    # Emergency reviews

    def list_emergency_reviews(self, subject_id: Any) -> OperationResult[List[Dict[str, Any]]]:
        """Open reviews for the caller's hospital (tier 3 only)."""

        def call() -> List[Dict[str, Any]]:
            staff = self._staff(subject_id)
            if not staff.can(Capability.EMERGENCY_OVERRIDE):
                raise AuthorizationError("Only Level 3 staff may view emergency reviews")
            return self.emergency.list_pending_reviews(staff.hospital_id)

        return self._run("list_emergency_reviews", call)

    def complete_emergency_review(
        self, subject_id: Any, review_id: Any, notes: Optional[str]
    ) -> OperationResult[Dict[str, Any]]:
        """Close an emergency review."""

        def call() -> Dict[str, Any]:
            review = self.emergency.complete_review(review_id, self._staff(subject_id), notes)
            return review.to_dict()

        return self._run("complete_emergency_review", call)

    # Medical records

    def search_patients(self, subject_id: Any, query: Optional[str]) -> OperationResult[List[Dict[str, Any]]]:
        """Find patients by name, email or phone."""

        def call() -> List[Dict[str, Any]]:
            self._staff(subject_id)
            return self.records.search_patients(query)

        return self._run("search_patients", call)

    def patient_history(self, subject_id: Any, patient_id: Any) -> OperationResult[Dict[str, Any]]:
        """A granted patient's details and records."""

        def call() -> Dict[str, Any]:
            return self.records.patient_history(self._staff(subject_id), patient_id)

        return self._run("patient_history", call)

    def medical_history(self, subject_id: Any) -> OperationResult[List[Dict[str, Any]]]:
        """The calling patient's own records."""

        def call() -> List[Dict[str, Any]]:
            patient = self.identity.resolve_patient(subject_id)
            return self.records.records_for_patient(patient.id)

        return self._run("medical_history", call)

    def create_record(
        self, subject_id: Any, patient_id: Any, fields: Optional[Dict[str, Any]]
    ) -> OperationResult[Dict[str, Any]]:
        """Write a new medical record."""

        def call() -> Dict[str, Any]:
            record = self.records.create_record(self._staff(subject_id), patient_id, fields)
            return record.to_dict()

        return self._run("create_record", call)

    def update_record(
        self, subject_id: Any, record_id: Any, fields: Optional[Dict[str, Any]]
    ) -> OperationResult[Dict[str, Any]]:
        """Change a record the caller's hospital wrote."""

        def call() -> Dict[str, Any]:
            record = self.records.update_record(self._staff(subject_id), record_id, fields)
            return record.to_dict()

        return self._run("update_record", call)

    def delete_record(self, subject_id: Any, record_id: Any) -> OperationResult[str]:
        """Delete a record the caller's hospital wrote. Returns the record id."""

        def call() -> str:
            self.records.delete_record(self._staff(subject_id), record_id)
            return str(record_id)

        return self._run("delete_record", call)

    # Dashboard

    def get_audit_logs(self, subject_id: Any, limit: int = 10) -> OperationResult[List[Dict[str, Any]]]:
        """Latest audit entries of the caller's hospital."""

        def call() -> List[Dict[str, Any]]:
            staff = self._staff(subject_id)
            return self.dashboard.get_audit_logs(limit=limit, hospital_id=staff.hospital_id)

        return self._run("get_audit_logs", call)

    def get_dashboard_stats(self, subject_id: Any) -> OperationResult[Dict[str, int]]:
        """Dashboard counters for the caller's hospital."""

        def call() -> Dict[str, int]:
            return self.dashboard.get_dashboard_stats(self._staff(subject_id).hospital_id)

        return self._run("get_dashboard_stats", call)

    def get_recent_activity(self, subject_id: Any, limit: int = 5) -> OperationResult[List[Dict[str, Any]]]:
        """Latest requests and acceptances of the caller's hospital."""

        def call() -> List[Dict[str, Any]]:
            staff = self._staff(subject_id)
            return self.dashboard.recent_patient_activity(staff.hospital_id, limit=limit)

        return self._run("get_recent_activity", call)

    def get_time_series(self, subject_id: Any, hours: int = 24) -> OperationResult[List[Dict[str, Any]]]:
        """Hourly request/acceptance chart for the caller's hospital."""

        def call() -> List[Dict[str, Any]]:
            staff = self._staff(subject_id)
            return self.dashboard.time_series(staff.hospital_id, hours=hours)

        return self._run("get_time_series", call)

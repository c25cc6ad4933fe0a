"""Hospital dashboard queries built on the audit trail."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import aliased

from carelink.core.exceptions import ValidationError
from carelink.models.audit_log import ACCESS_GRANTING_ACTIONS, AuditAction, AuditLog
from carelink.models.base import ensure_utc, utcnow
from carelink.models.patient import Patient
from carelink.models.staff import HealthcareStaff
from carelink.services.base import BaseService, parse_id

RECORD_WRITE_ACTIONS = (AuditAction.CREATED_NEW_RECORD, AuditAction.UPDATED_RECORD)
ACTIVITY_ACTIONS = (AuditAction.ACCEPTED_REQUEST, AuditAction.REQUESTED_DATA)
MAX_AUDIT_LOG_LIMIT = 500


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _start_of_hour(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


class DashboardService(BaseService):
    """Audit log listings, counters and charts for a hospital."""

    def get_audit_logs(self, limit: int = 10, hospital_id: Any = None) -> List[Dict[str, Any]]:
        """Most recent audit entries with patient and staff names."""
        if limit < 1:
            raise ValidationError("limit must be positive", field="limit")
        limit = min(limit, MAX_AUDIT_LOG_LIMIT)

        hospital_uuid = None if hospital_id is None else parse_id(hospital_id, "hospital_id")
        return self._named_entries(hospital_uuid, limit=limit)

    def recent_patient_activity(self, hospital_id: Any, limit: int = 5) -> List[Dict[str, Any]]:
        """Latest requests and acceptances for the hospital."""
        hospital_uuid = parse_id(hospital_id, "hospital_id")
        return self._named_entries(hospital_uuid, limit=limit, actions=ACTIVITY_ACTIONS)

    def get_dashboard_stats(self, hospital_id: Any) -> Dict[str, int]:
        """Counters shown on the hospital dashboard.

        ``today_*`` count entries since UTC midnight; ``week_records`` counts
        record creations and updates over the last seven days.
        """
        hospital_uuid = parse_id(hospital_id, "hospital_id")
        now = utcnow()
        today = _start_of_day(now)
        week_ago = now - timedelta(days=7)

        rows = self.session.execute(
            select(AuditLog.action_type, AuditLog.created_at).where(
                AuditLog.hospital_id == hospital_uuid,
                AuditLog.created_at >= min(today, week_ago),
            )
        ).all()

        stats = {
            "today_requests": 0,
            "today_accepted": 0,
            "week_records": 0,
            "today_actions": 0,
        }
        for action_type, created_at in rows:
            created_at = ensure_utc(created_at)
            if created_at >= week_ago and action_type in RECORD_WRITE_ACTIONS:
                stats["week_records"] += 1
            if created_at < today:
                continue
            stats["today_actions"] += 1
            if action_type == AuditAction.REQUESTED_DATA:
                stats["today_requests"] += 1
            elif action_type in ACCESS_GRANTING_ACTIONS:
                stats["today_accepted"] += 1
        return stats

    def time_series(self, hospital_id: Any, hours: int = 24) -> List[Dict[str, Any]]:
        """Hourly counts of requests and acceptances, oldest bucket first.

        The last bucket is the current (partial) hour.
        """
        hospital_uuid = parse_id(hospital_id, "hospital_id")
        if hours < 1:
            raise ValidationError("hours must be positive", field="hours")

        current = _start_of_hour(utcnow())
        slots = [current - timedelta(hours=offset) for offset in range(hours - 1, -1, -1)]
        buckets = {
            slot: {"datetime": slot.isoformat(), "hour": slot.hour, "requests": 0, "accepted": 0}
            for slot in slots
        }

        rows = self.session.execute(
            select(AuditLog.action_type, AuditLog.created_at).where(
                AuditLog.hospital_id == hospital_uuid,
                AuditLog.created_at >= slots[0],
            )
        ).all()
        for action_type, created_at in rows:
            bucket = buckets.get(_start_of_hour(ensure_utc(created_at)))
            if bucket is None:
                continue
            if action_type == AuditAction.REQUESTED_DATA:
                bucket["requests"] += 1
            elif action_type in ACCESS_GRANTING_ACTIONS:
                bucket["accepted"] += 1

        return [buckets[slot] for slot in slots]

    def _named_entries(
        self,
        hospital_id: Optional[Any],
        limit: int,
        actions: Optional[tuple] = None,
    ) -> List[Dict[str, Any]]:
        staff_alias = aliased(HealthcareStaff)
        query = (
            select(AuditLog, Patient, staff_alias)
            .outerjoin(Patient, Patient.id == AuditLog.patient_id)
            .outerjoin(staff_alias, staff_alias.id == AuditLog.staff_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        if hospital_id is not None:
            query = query.where(AuditLog.hospital_id == hospital_id)
        if actions:
            query = query.where(AuditLog.action_type.in_(actions))

        entries = []
        for entry, patient, staff in self.session.execute(query).all():
            item = entry.to_dict()
            item["patient_name"] = patient.full_name if patient else None
            item["staff_name"] = staff.full_name if staff else None
            entries.append(item)
        return entries

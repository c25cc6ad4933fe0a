"""HTTP tests for the CareLink Consent API."""

import uuid

import pytest
from fastapi.testclient import TestClient

from carelink.api import health
from carelink.api.app import create_app
from carelink.api.dependencies import get_gateway
from carelink.gateway import AccessGateway

API = "/api/v1"
REASON = "Patient unresponsive, ER."


@pytest.fixture
def client(db_session, settings):
    """Test client whose requests share the test session."""
    app = create_app(settings)
    app.dependency_overrides[get_gateway] = lambda: AccessGateway(db_session, settings)
    with TestClient(app) as test_client:
        yield test_client


def as_subject(subject):
    """Identity header for a staff member or patient."""
    return {"X-Subject-Id": str(subject.id)}


class TestConsentFlow:
    """Request, inbox and redemption over HTTP."""

    def test_request_inbox_verify(self, client, editor, hospital, patient):
        """Test the full consent round trip."""
        response = client.post(
            f"{API}/access-requests",
            json={"hospital_id": str(hospital.id), "patient_id": str(patient.id)},
            headers=as_subject(editor),
        )
        assert response.status_code == 201
        assert "code" not in response.json()

        inbox = client.get(f"{API}/access-requests/inbox", headers=as_subject(patient)).json()
        assert len(inbox) == 1

        response = client.post(
            f"{API}/access-requests/verify",
            json={"code": inbox[0]["code"]},
            headers=as_subject(patient),
        )
        assert response.status_code == 201
        assert response.json()["grant_type"] == "consent"

        response = client.get(
            f"{API}/access/check",
            params={"hospital_id": str(hospital.id), "patient_id": str(patient.id)},
            headers=as_subject(editor),
        )
        assert response.json() == {"has_access": True}

    def test_duplicate_request_conflicts(self, client, editor, hospital, patient):
        """Test a second request for the same pair maps to 409."""
        body = {"hospital_id": str(hospital.id), "patient_id": str(patient.id)}
        client.post(f"{API}/access-requests", json=body, headers=as_subject(editor))

        response = client.post(f"{API}/access-requests", json=body, headers=as_subject(editor))

        assert response.status_code == 409
        assert response.json()["error"]["kind"] == "Conflict"

    def test_unknown_code_not_found(self, client, patient):
        """Test a wrong code maps to 404 with the protocol message."""
        response = client.post(
            f"{API}/access-requests/verify", json={"code": "000000"}, headers=as_subject(patient)
        )
        assert response.status_code == 404
        assert response.json()["error"] == {
            "kind": "NotFound",
            "code": "NOT_FOUND",
            "message": "OTP not found or invalid",
            "path": f"{API}/access-requests/verify",
        }


class TestErrors:
    """Error kinds map onto status codes."""

    def test_missing_subject(self, client):
        """Test requests without identity are 401."""
        response = client.get(f"{API}/access/patients")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "X-Subject-Id"

    def test_unknown_subject(self, client):
        """Test an identity without a staff row is 401."""
        response = client.get(f"{API}/access/patients", headers={"X-Subject-Id": str(uuid.uuid4())})
        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "Unauthenticated"

    def test_access_check_for_other_hospital_forbidden(self, client, editor, other_hospital, patient):
        """Test staff get 403 when checking another hospital's access."""
        response = client.get(
            f"{API}/access/check",
            params={"hospital_id": str(other_hospital.id), "patient_id": str(patient.id)},
            headers=as_subject(editor),
        )
        assert response.status_code == 403

    @pytest.mark.emergency_access
    def test_lower_tier_override_forbidden(self, client, editor, patient):
        """Test tier 2 staff get 403 from the override."""
        response = client.post(
            f"{API}/emergency-override",
            json={"patient_id": str(patient.id), "reason": REASON},
            headers=as_subject(editor),
        )
        assert response.status_code == 403

    @pytest.mark.emergency_access
    def test_short_reason_unprocessable(self, client, emergency_staff, patient):
        """Test a short reason maps to 422."""
        response = client.post(
            f"{API}/emergency-override",
            json={"patient_id": str(patient.id), "reason": "urgent"},
            headers=as_subject(emergency_staff),
        )
        assert response.status_code == 422
        assert response.json()["error"]["kind"] == "ValidationError"

    def test_unknown_record_field_rejected(self, client, editor, patient, grant_for):
        """Test fields outside the clinical set are refused by the schema."""
        grant_for(editor, patient)
        response = client.post(
            f"{API}/records",
            json={"patient_id": str(patient.id), "hospital_id": str(uuid.uuid4())},
            headers=as_subject(editor),
        )
        assert response.status_code == 422


class TestRecordsAndReviews:
    """Record CRUD and emergency reviews over HTTP."""

    def test_record_lifecycle(self, client, editor, patient, grant_for):
        """Test create, update, history and delete."""
        grant_for(editor, patient)

        created = client.post(
            f"{API}/records",
            json={"patient_id": str(patient.id), "blood_pressure": "118/76"},
            headers=as_subject(editor),
        )
        assert created.status_code == 201
        record_id = created.json()["id"]

        updated = client.patch(
            f"{API}/records/{record_id}", json={"assessment": "Stable"}, headers=as_subject(editor)
        )
        assert updated.json()["assessment"] == "Stable"

        history = client.get(f"{API}/patients/{patient.id}/history", headers=as_subject(editor))
        assert [r["id"] for r in history.json()["records"]] == [record_id]

        deleted = client.delete(f"{API}/records/{record_id}", headers=as_subject(editor))
        assert deleted.json() == {"deleted": record_id}

    @pytest.mark.emergency_access
    def test_override_and_review(self, client, emergency_staff, reviewer, patient):
        """Test an override opens a review that another tier 3 member closes."""
        response = client.post(
            f"{API}/emergency-override",
            json={"patient_id": str(patient.id), "reason": REASON},
            headers=as_subject(emergency_staff),
        )
        assert response.status_code == 201

        reviews = client.get(f"{API}/emergency-reviews", headers=as_subject(reviewer)).json()
        assert len(reviews) == 1

        response = client.post(
            f"{API}/emergency-reviews/{reviews[0]['id']}/complete",
            json={"notes": "Confirmed with ER chart"},
            headers=as_subject(reviewer),
        )
        assert response.json()["status"] == "reviewed"

    def test_dashboard(self, client, editor, hospital, patient):
        """Test dashboard endpoints answer for the caller's hospital."""
        client.post(
            f"{API}/access-requests",
            json={"hospital_id": str(hospital.id), "patient_id": str(patient.id)},
            headers=as_subject(editor),
        )

        stats = client.get(f"{API}/dashboard/stats", headers=as_subject(editor)).json()
        logs = client.get(f"{API}/dashboard/audit-logs", headers=as_subject(editor)).json()

        assert stats["today_requests"] == 1
        assert logs[0]["staff_name"] == "Ana Reyes"


class TestHealth:
    """Health and metrics."""

    def test_health(self, client, monkeypatch):
        """Test the health endpoint reports the database check."""
        monkeypatch.setattr(health, "check_database", lambda: True)
        assert client.get("/health").json()["status"] == "healthy"

    def test_health_degraded(self, client, monkeypatch):
        """Test an unreachable database yields 503."""
        monkeypatch.setattr(health, "check_database", lambda: False)
        response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["checks"] == {"database": False}

    def test_metrics(self, client):
        """Test Prometheus exposition is served."""
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "carelink_" in response.text

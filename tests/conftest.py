"""Test configuration for CareLink Consent.

Unit tests run against an in-memory SQLite database shared through a
StaticPool. Concurrency tests use a file-backed SQLite database so that each
thread gets its own connection.
"""

import os
import uuid
from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.pool import StaticPool

# Set testing environment BEFORE any carelink imports
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUDIT_SIGNING_KEY", "test-audit-signing-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from carelink.config import Settings  # noqa: E402
from carelink.core.database import build_engine, make_session_factory  # noqa: E402
from carelink.models import Base, Grant, HealthcareStaff, Hospital, Patient, RoleTier  # noqa: E402

TEST_AUDIT_KEY = "test-audit-signing-key"


def pytest_configure(config):
    """Register custom markers for consent compliance."""
    config.addinivalue_line(
        "markers", "audit_required: mark test as asserting on the audit trail"
    )
    config.addinivalue_line(
        "markers", "emergency_access: mark test as handling emergency override access"
    )
    config.addinivalue_line(
        "markers", "concurrency: mark test as running operations from several threads"
    )


def make_settings(**overrides) -> Settings:
    """Settings for tests: SQLite, fixed audit key, near-zero retry waits."""
    values = {
        "environment": "test",
        "database_url": "sqlite://",
        "audit_signing_key": TEST_AUDIT_KEY,
        "storage_retry_attempts": 3,
        "storage_retry_wait_multiplier": 0.001,
        "storage_retry_wait_max": 0.01,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings():
    """Test settings."""
    return make_settings()


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Real database session - no mocks for consent data."""
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine for tests that need one connection per thread."""
    db_settings = make_settings(
        database_url=f"sqlite:///{tmp_path / 'carelink.db'}",
        database_statement_timeout_ms=10000,
    )
    engine = build_engine(db_settings)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def hospital(db_session):
    """The requesting hospital."""
    hospital = Hospital(name="St. Luke's Medical Center")
    db_session.add(hospital)
    db_session.commit()
    return hospital


@pytest.fixture
def other_hospital(db_session):
    """A second, unrelated hospital."""
    hospital = Hospital(name="Makati General")
    db_session.add(hospital)
    db_session.commit()
    return hospital


@pytest.fixture
def make_staff(db_session):
    """Factory for staff members of a given hospital and tier."""

    def _make(hospital, role=RoleTier.EDIT, first_name="Ana", last_name="Reyes"):
        staff = HealthcareStaff(
            hospital_id=hospital.id,
            first_name=first_name,
            last_name=last_name,
            occupation="Physician",
            role=role,
        )
        db_session.add(staff)
        db_session.commit()
        return staff

    return _make


@pytest.fixture
def reader(make_staff, hospital):
    """Tier 1 staff member."""
    return make_staff(hospital, RoleTier.READ_ONLY, "Ben", "Cruz")


@pytest.fixture
def editor(make_staff, hospital):
    """Tier 2 staff member."""
    return make_staff(hospital, RoleTier.EDIT, "Ana", "Reyes")


@pytest.fixture
def emergency_staff(make_staff, hospital):
    """Tier 3 staff member."""
    return make_staff(hospital, RoleTier.EMERGENCY, "Carlo", "Santos")


@pytest.fixture
def reviewer(make_staff, hospital):
    """Second tier 3 staff member of the same hospital."""
    return make_staff(hospital, RoleTier.EMERGENCY, "Dana", "Lim")


@pytest.fixture
def make_patient(db_session):
    """Factory for patients."""

    def _make(first_name="Maria", last_name="Dela Cruz", email=None, contact_num="09171234567"):
        patient = Patient(
            first_name=first_name,
            last_name=last_name,
            birthday=date(1990, 5, 17),
            age=36,
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            contact_num=contact_num,
            blood_type="O+",
            address="12 Mabini St, Manila",
        )
        db_session.add(patient)
        db_session.commit()
        return patient

    return _make


@pytest.fixture
def patient(make_patient):
    """The patient whose data is requested."""
    return make_patient()


@pytest.fixture
def count_rows(db_session):
    """Count rows of a model, optionally filtered."""

    def _count(model, *criteria):
        query = select(func.count()).select_from(model)
        if criteria:
            query = query.where(*criteria)
        return db_session.scalar(query)

    return _count


@pytest.fixture
def grant_for(db_session):
    """Insert a consent grant directly."""

    def _grant(staff, patient):
        grant = Grant(patient_id=patient.id, hospital_id=staff.hospital_id, staff_id=staff.id)
        db_session.add(grant)
        db_session.commit()
        return grant

    return _grant

"""Consent protocol schema

Revision ID: 001_consent_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

from carelink.models.db_types import UUID

# revision identifiers
revision = '001_consent_schema'
down_revision = None
branch_labels = None
depends_on = None

ROLE_TIER = sa.Enum('READ_ONLY', 'EDIT', 'EMERGENCY', name='role_tier')
GRANT_TYPE = sa.Enum('CONSENT', 'EMERGENCY', name='grant_type')
REVIEW_STATUS = sa.Enum('PENDING', 'REVIEWED', name='review_status')
AUDIT_ACTION = sa.Enum(
    'REQUESTED_DATA', 'ACCEPTED_REQUEST', 'REQUEST_EXPIRED',
    'EMERGENCY_OVERRIDE', 'EMERGENCY_OVERRIDE_REVIEWED',
    'CREATED_NEW_RECORD', 'UPDATED_RECORD', 'DELETED_RECORD',
    name='audit_action',
)

APPEND_ONLY_TABLES = ['access_grants', 'audit_logs']


def _timestamps():
    return [
        sa.Column('id', UUID(), primary_key=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """
    Create the consent protocol tables. On PostgreSQL, grants and audit
    entries are additionally protected by triggers that reject UPDATE/DELETE.
    """

    op.create_table('hospitals',
        *_timestamps(),
        sa.Column('name', sa.String(200), nullable=False),
    )

    op.create_table('patients',
        *_timestamps(),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('middle_name', sa.String(100)),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('birthday', sa.Date()),
        sa.Column('age', sa.Integer()),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('contact_num', sa.String(50)),
        sa.Column('blood_type', sa.String(5)),
        sa.Column('address', sa.Text()),
    )
    op.create_index('idx_patient_name', 'patients', ['last_name', 'first_name'])

    op.create_table('healthcare_staff',
        *_timestamps(),
        sa.Column('hospital_id', UUID(), sa.ForeignKey('hospitals.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('middle_name', sa.String(100)),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('birthday', sa.Date()),
        sa.Column('occupation', sa.String(100)),
        sa.Column('role', ROLE_TIER, nullable=False),
    )
    op.create_index('ix_healthcare_staff_hospital_id', 'healthcare_staff', ['hospital_id'])

    op.create_table('pending_requests',
        *_timestamps(),
        sa.Column('patient_id', UUID(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('hospital_id', UUID(), sa.ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('staff_id', UUID(), sa.ForeignKey('healthcare_staff.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code', sa.String(10), nullable=False),
        sa.UniqueConstraint('hospital_id', 'patient_id', name='uq_pending_hospital_patient'),
        sa.UniqueConstraint('code', name='uq_pending_code'),
    )
    op.create_index('idx_pending_patient_time', 'pending_requests', ['patient_id', 'created_at'])

    op.create_table('access_grants',
        *_timestamps(),
        sa.Column('patient_id', UUID(), sa.ForeignKey('patients.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('hospital_id', UUID(), sa.ForeignKey('hospitals.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('staff_id', UUID(), sa.ForeignKey('healthcare_staff.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('grant_type', GRANT_TYPE, nullable=False),
    )
    op.create_index('idx_grant_hospital_patient', 'access_grants', ['hospital_id', 'patient_id'])
    op.create_index('idx_grant_patient_time', 'access_grants', ['patient_id', 'created_at'])

    op.create_table('medical_records',
        *_timestamps(),
        sa.Column('patient_id', UUID(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('hospital_id', UUID(), sa.ForeignKey('hospitals.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('staff_id', UUID(), sa.ForeignKey('healthcare_staff.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('transaction', sa.String(200)),
        sa.Column('medication', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('assessment', sa.Text()),
        sa.Column('blood_pressure', sa.String(20)),
        sa.Column('drinking', sa.Boolean()),
        sa.Column('smoking', sa.Boolean()),
        sa.Column('height', sa.String(20)),
        sa.Column('weight', sa.String(20)),
        sa.Column('doctor_id', UUID()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('idx_record_patient_time', 'medical_records', ['patient_id', 'created_at'])

    op.create_table('audit_logs',
        *_timestamps(),
        sa.Column('patient_id', UUID(), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('hospital_id', UUID(), sa.ForeignKey('hospitals.id'), nullable=False),
        sa.Column('staff_id', UUID(), sa.ForeignKey('healthcare_staff.id'), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('action_type', AUDIT_ACTION, nullable=False),
        sa.Column('flagged', sa.Boolean(), nullable=False),
        sa.Column('checksum', sa.String(64), nullable=False),
    )
    op.create_index('idx_audit_hospital_time', 'audit_logs', ['hospital_id', 'created_at'])
    op.create_index('idx_audit_patient_time', 'audit_logs', ['patient_id', 'created_at'])
    op.create_index('idx_audit_action_type', 'audit_logs', ['action_type'])
    op.create_index('idx_audit_flagged', 'audit_logs', ['flagged'])

    op.create_table('emergency_reviews',
        *_timestamps(),
        sa.Column('grant_id', UUID(), sa.ForeignKey('access_grants.id', ondelete='RESTRICT'), nullable=False, unique=True),
        sa.Column('audit_log_id', UUID(), sa.ForeignKey('audit_logs.id'), nullable=False),
        sa.Column('patient_id', UUID(), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('hospital_id', UUID(), sa.ForeignKey('hospitals.id'), nullable=False),
        sa.Column('staff_id', UUID(), sa.ForeignKey('healthcare_staff.id'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', REVIEW_STATUS, nullable=False),
        sa.Column('reviewed_by', UUID(), sa.ForeignKey('healthcare_staff.id')),
        sa.Column('reviewed_at', sa.DateTime(timezone=True)),
        sa.Column('review_notes', sa.Text()),
    )
    op.create_index('ix_emergency_reviews_hospital_id', 'emergency_reviews', ['hospital_id'])
    op.create_index('ix_emergency_reviews_status', 'emergency_reviews', ['status'])

    if op.get_bind().dialect.name != 'postgresql':
        return

    # Append-only enforcement in the database itself
    op.execute("""
        CREATE OR REPLACE FUNCTION reject_append_only_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '% rows are append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
    """)
    for table in APPEND_ONLY_TABLES:
        op.execute(f"""
            CREATE TRIGGER {table}_append_only
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION reject_append_only_mutation();
        """)


def downgrade() -> None:
    """Drop all tables and types"""

    if op.get_bind().dialect.name == 'postgresql':
        for table in APPEND_ONLY_TABLES:
            op.execute(f"DROP TRIGGER IF EXISTS {table}_append_only ON {table};")
        op.execute("DROP FUNCTION IF EXISTS reject_append_only_mutation();")

    op.drop_table('emergency_reviews')
    op.drop_table('audit_logs')
    op.drop_table('medical_records')
    op.drop_table('access_grants')
    op.drop_table('pending_requests')
    op.drop_table('healthcare_staff')
    op.drop_table('patients')
    op.drop_table('hospitals')

    if op.get_bind().dialect.name == 'postgresql':
        for enum_type in (AUDIT_ACTION, REVIEW_STATUS, GRANT_TYPE, ROLE_TIER):
            enum_type.drop(op.get_bind(), checkfirst=True)

"""Initial screening schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create accounts, postings, profiles, applications and interview sessions."""
    op.create_table(
        'companies',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'accounts',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('external_ref', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=True),
        sa.Column('company_id', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('email', name='uq_accounts_email'),
        sa.UniqueConstraint('external_ref', name='uq_accounts_external_ref'),
    )
    op.create_index('idx_accounts_role', 'accounts', ['role'])
    op.create_index('idx_accounts_company_id', 'accounts', ['company_id'])

    op.create_table(
        'job_postings',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('company_id', sa.BigInteger(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('requirements', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_job_postings_company_id', 'job_postings', ['company_id'])
    op.create_index('idx_job_postings_is_active', 'job_postings', ['is_active'])

    op.create_table(
        'candidate_profiles',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('account_id', sa.BigInteger(), nullable=False),
        sa.Column('resume_text', sa.Text(), nullable=True),
        sa.Column('resume_document_url', sa.String(length=1000), nullable=True),
        sa.Column('last_resume_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('account_id', name='uq_candidate_profiles_account_id'),
    )

    op.create_table(
        'applications',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('candidate_id', sa.BigInteger(), nullable=False),
        sa.Column('job_posting_id', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='APPLIED'),
        sa.Column('open_pair_key', sa.String(length=64), nullable=True),
        sa.Column('interview_session_id', sa.BigInteger(), nullable=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidate_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_posting_id'], ['job_postings.id'], ondelete='CASCADE'),
        # At most one open application per (candidate, job posting)
        sa.UniqueConstraint('open_pair_key', name='uq_applications_open_pair_key'),
    )
    op.create_index('idx_applications_candidate_id', 'applications', ['candidate_id'])
    op.create_index('idx_applications_job_posting_id', 'applications', ['job_posting_id'])
    op.create_index('idx_applications_status', 'applications', ['status'])
    op.create_index('idx_applications_interview_session_id', 'applications', ['interview_session_id'])

    op.create_table(
        'application_status_history',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('application_id', sa.BigInteger(), nullable=False),
        sa.Column('from_status', sa.String(length=50), nullable=True),
        sa.Column('to_status', sa.String(length=50), nullable=False),
        sa.Column('actor_kind', sa.String(length=20), nullable=False),
        sa.Column('actor_account_id', sa.BigInteger(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_status_history_application_id', 'application_status_history', ['application_id'])

    op.create_table(
        'interview_sessions',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('candidate_profile_id', sa.BigInteger(), nullable=False),
        sa.Column('application_id', sa.BigInteger(), nullable=True),
        sa.Column('local_call_ref', sa.String(length=64), nullable=False),
        sa.Column('external_call_id', sa.String(length=255), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=False, server_default=''),
        sa.Column('transcript_turns', sa.JSON(), nullable=False),
        sa.Column('feedback', sa.Text(), nullable=False, server_default=''),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('finalize_reason', sa.String(length=20), nullable=True),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('application_synced', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_event_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('aborted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['candidate_profile_id'], ['candidate_profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('application_id', name='uq_interview_sessions_application_id'),
        sa.UniqueConstraint('local_call_ref', name='uq_interview_sessions_local_call_ref'),
        sa.UniqueConstraint('external_call_id', name='uq_interview_sessions_external_call_id'),
    )
    op.create_index('idx_interview_sessions_candidate_profile_id', 'interview_sessions', ['candidate_profile_id'])
    op.create_index('idx_interview_sessions_state', 'interview_sessions', ['state'])
    # Reaper scan: ACTIVE sessions ordered by last activity
    op.create_index('idx_interview_sessions_state_last_event', 'interview_sessions', ['state', 'last_event_at'])


def downgrade() -> None:
    """Drop the screening schema."""
    op.drop_index('idx_interview_sessions_state_last_event', table_name='interview_sessions')
    op.drop_index('idx_interview_sessions_state', table_name='interview_sessions')
    op.drop_index('idx_interview_sessions_candidate_profile_id', table_name='interview_sessions')
    op.drop_table('interview_sessions')
    op.drop_index('idx_status_history_application_id', table_name='application_status_history')
    op.drop_table('application_status_history')
    op.drop_index('idx_applications_interview_session_id', table_name='applications')
    op.drop_index('idx_applications_status', table_name='applications')
    op.drop_index('idx_applications_job_posting_id', table_name='applications')
    op.drop_index('idx_applications_candidate_id', table_name='applications')
    op.drop_table('applications')
    op.drop_table('candidate_profiles')
    op.drop_index('idx_job_postings_is_active', table_name='job_postings')
    op.drop_index('idx_job_postings_company_id', table_name='job_postings')
    op.drop_table('job_postings')
    op.drop_index('idx_accounts_company_id', table_name='accounts')
    op.drop_index('idx_accounts_role', table_name='accounts')
    op.drop_table('accounts')
    op.drop_table('companies')

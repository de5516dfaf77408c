"""initial scan schema

Revision ID: 3c7d1e2a9b10
Revises:
Create Date: 2025-10-02 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c7d1e2a9b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _audit_columns():
	return [
		sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.text('false')),
		sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
	]


def upgrade() -> None:
	"""Upgrade schema."""
	op.create_table(
		'organizations',
		sa.Column('id', sa.Integer(), nullable=False),
		*_audit_columns(),
		sa.Column('name', sa.String(), nullable=False),
		sa.PrimaryKeyConstraint('id')
	)
	op.create_index(op.f('ix_organizations_id'), 'organizations', ['id'], unique=False)

	op.create_table(
		'users',
		sa.Column('id', sa.Integer(), nullable=False),
		*_audit_columns(),
		sa.Column('email', sa.String(), nullable=False),
		sa.Column('name', sa.String(), nullable=False),
		sa.Column('plan', sa.String(), nullable=False, server_default='free'),
		sa.Column('organization_id', sa.Integer(), nullable=True),
		sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('true')),
		sa.Column('is_superuser', sa.Boolean(), nullable=True, server_default=sa.text('false')),
		sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='SET NULL'),
		sa.PrimaryKeyConstraint('id')
	)
	op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
	op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
	op.create_index(op.f('ix_users_organization_id'), 'users', ['organization_id'], unique=False)

	op.create_table(
		'businesses',
		sa.Column('id', sa.Integer(), nullable=False),
		*_audit_columns(),
		sa.Column('user_id', sa.Integer(), nullable=True),
		sa.Column('website_name', sa.String(), nullable=False),
		sa.Column('website_url', sa.String(), nullable=True),
		sa.Column('industry', sa.String(), nullable=True),
		sa.Column('location', sa.String(), nullable=True),
		sa.Column('description', sa.Text(), nullable=True),
		sa.Column('use_location_in_analysis', sa.Boolean(), nullable=False, server_default=sa.text('false')),
		sa.Column('recurring_scans', sa.Boolean(), nullable=False, server_default=sa.text('false')),
		sa.Column('scan_frequency', sa.String(), nullable=True),
		sa.Column('last_scan_date', sa.DateTime(timezone=True), nullable=True),
		sa.Column('next_scan_date', sa.DateTime(timezone=True), nullable=True),
		sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
		sa.PrimaryKeyConstraint('id'),
		sa.UniqueConstraint('website_url')
	)
	op.create_index(op.f('ix_businesses_id'), 'businesses', ['id'], unique=False)
	op.create_index(op.f('ix_businesses_user_id'), 'businesses', ['user_id'], unique=False)
	op.create_index(op.f('ix_businesses_recurring_scans'), 'businesses', ['recurring_scans'], unique=False)
	op.create_index(op.f('ix_businesses_next_scan_date'), 'businesses', ['next_scan_date'], unique=False)

	op.create_table(
		'organization_businesses',
		sa.Column('id', sa.Integer(), nullable=False),
		*_audit_columns(),
		sa.Column('organization_id', sa.Integer(), nullable=False),
		sa.Column('business_id', sa.Integer(), nullable=False),
		sa.Column('role', sa.String(), nullable=False, server_default='owner'),
		sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
		sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
		sa.PrimaryKeyConstraint('id'),
		sa.UniqueConstraint('organization_id', 'business_id', name='uq_organization_business')
	)
	op.create_index(op.f('ix_organization_businesses_id'), 'organization_businesses', ['id'], unique=False)
	op.create_index(op.f('ix_organization_businesses_organization_id'), 'organization_businesses', ['organization_id'], unique=False)
	op.create_index(op.f('ix_organization_businesses_business_id'), 'organization_businesses', ['business_id'], unique=False)

	op.create_table(
		'analysis_jobs',
		sa.Column('id', sa.String(length=36), nullable=False),
		*_audit_columns(),
		sa.Column('website_url', sa.String(), nullable=False),
		sa.Column('user_id', sa.Integer(), nullable=False),
		sa.Column('organization_id', sa.Integer(), nullable=True),
		sa.Column('business_id', sa.Integer(), nullable=True),
		sa.Column('status', sa.String(), nullable=False, server_default='not-started'),
		sa.Column('current_step', sa.String(), nullable=False, server_default='not-started'),
		sa.Column('progress_percent', sa.SmallInteger(), nullable=False, server_default=sa.text('0')),
		sa.Column('progress_message', sa.String(), nullable=True),
		sa.Column('retry_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
		sa.Column('in_progress', sa.Boolean(), nullable=False, server_default=sa.text('false')),
		sa.Column('extracted_info', JSON, nullable=True),
		sa.Column('prompts', JSON, nullable=True),
		sa.Column('analysis_result', JSON, nullable=True),
		sa.Column('error', sa.Text(), nullable=True),
		sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
		sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
		sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
		sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='SET NULL'),
		sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='SET NULL'),
		sa.PrimaryKeyConstraint('id')
	)
	op.create_index(op.f('ix_analysis_jobs_user_id'), 'analysis_jobs', ['user_id'], unique=False)
	op.create_index(op.f('ix_analysis_jobs_organization_id'), 'analysis_jobs', ['organization_id'], unique=False)
	op.create_index(op.f('ix_analysis_jobs_business_id'), 'analysis_jobs', ['business_id'], unique=False)
	op.create_index(op.f('ix_analysis_jobs_status'), 'analysis_jobs', ['status'], unique=False)
	# Composite indexes for the pickup and orphan queries
	op.create_index('ix_analysis_jobs_status_created_at', 'analysis_jobs', ['status', 'created_at'], unique=False)
	op.create_index('ix_analysis_jobs_in_progress_status', 'analysis_jobs', ['in_progress', 'status'], unique=False)

	op.create_table(
		'input_histories',
		sa.Column('id', sa.Integer(), nullable=False),
		*_audit_columns(),
		sa.Column('user_id', sa.Integer(), nullable=True),
		sa.Column('business_id', sa.Integer(), nullable=False),
		sa.Column('run_uuid', sa.String(length=64), nullable=True),
		sa.Column('keywords', JSON, nullable=False),
		sa.Column('prompts', JSON, nullable=False),
		sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
		sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
		sa.PrimaryKeyConstraint('id')
	)
	op.create_index(op.f('ix_input_histories_id'), 'input_histories', ['id'], unique=False)
	op.create_index(op.f('ix_input_histories_user_id'), 'input_histories', ['user_id'], unique=False)
	op.create_index(op.f('ix_input_histories_business_id'), 'input_histories', ['business_id'], unique=False)
	op.create_index(op.f('ix_input_histories_run_uuid'), 'input_histories', ['run_uuid'], unique=False)

	op.create_table(
		'ranking_histories',
		sa.Column('id', sa.Integer(), nullable=False),
		*_audit_columns(),
		sa.Column('user_id', sa.Integer(), nullable=True),
		sa.Column('business_id', sa.Integer(), nullable=False),
		sa.Column('date', sa.Date(), nullable=False),
		sa.Column('run_uuid', sa.String(length=64), nullable=False),
		sa.Column('provider_ranks', JSON, nullable=False),
		sa.Column('average_rank', sa.Integer(), nullable=True),
		sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
		sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
		sa.PrimaryKeyConstraint('id'),
		sa.UniqueConstraint('business_id', 'date', name='uq_ranking_history_business_date')
	)
	op.create_index(op.f('ix_ranking_histories_id'), 'ranking_histories', ['id'], unique=False)
	op.create_index(op.f('ix_ranking_histories_user_id'), 'ranking_histories', ['user_id'], unique=False)
	op.create_index(op.f('ix_ranking_histories_business_id'), 'ranking_histories', ['business_id'], unique=False)

	op.create_table(
		'request_logs',
		sa.Column('id', sa.Integer(), nullable=False),
		sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
		sa.Column('correlation_id', sa.String(length=64), nullable=False),
		sa.Column('direction', sa.String(length=16), nullable=False),
		sa.Column('connection_type', sa.String(length=16), nullable=True),
		sa.Column('method', sa.String(length=16), nullable=True),
		sa.Column('path_template', sa.String(length=512), nullable=True),
		sa.Column('raw_path', sa.String(length=512), nullable=True),
		sa.Column('route_name', sa.String(length=128), nullable=True),
		sa.Column('status_code', sa.Integer(), nullable=True),
		sa.Column('duration_ms', sa.Integer(), nullable=False),
		sa.Column('client_ip', sa.String(length=64), nullable=True),
		sa.Column('user_agent', sa.String(length=256), nullable=True),
		sa.Column('auth_type', sa.String(length=16), nullable=True),
		sa.Column('user_id', sa.Integer(), nullable=True),
		sa.Column('provider', sa.String(length=64), nullable=True),
		sa.Column('target', sa.String(length=256), nullable=True),
		sa.Column('error_code', sa.String(length=64), nullable=True),
		sa.Column('job_id', sa.String(length=36), nullable=True),
		sa.PrimaryKeyConstraint('id')
	)
	op.create_index(op.f('ix_request_logs_id'), 'request_logs', ['id'], unique=False)
	op.create_index(op.f('ix_request_logs_created_at'), 'request_logs', ['created_at'], unique=False)
	op.create_index(op.f('ix_request_logs_correlation_id'), 'request_logs', ['correlation_id'], unique=False)
	op.create_index(op.f('ix_request_logs_path_template'), 'request_logs', ['path_template'], unique=False)
	op.create_index(op.f('ix_request_logs_status_code'), 'request_logs', ['status_code'], unique=False)
	op.create_index(op.f('ix_request_logs_user_id'), 'request_logs', ['user_id'], unique=False)
	op.create_index(op.f('ix_request_logs_provider'), 'request_logs', ['provider'], unique=False)
	op.create_index(op.f('ix_request_logs_target'), 'request_logs', ['target'], unique=False)
	op.create_index(op.f('ix_request_logs_job_id'), 'request_logs', ['job_id'], unique=False)


def downgrade() -> None:
	"""Downgrade schema."""
	op.drop_table('request_logs')
	op.drop_table('ranking_histories')
	op.drop_table('input_histories')
	op.drop_table('analysis_jobs')
	op.drop_table('organization_businesses')
	op.drop_table('businesses')
	op.drop_table('users')
	op.drop_table('organizations')

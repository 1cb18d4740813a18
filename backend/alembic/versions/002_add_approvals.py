"""add admin_approval_requests table with single-pending-per-target index

Revision ID: 002
Revises: 001
Create Date: 2026-09-08 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Detect database type
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == 'sqlite'

    # Choose appropriate types
    json_type = sa.JSON() if is_sqlite else postgresql.JSONB(astext_type=sa.Text())
    timestamp_default = sa.text("(datetime('now'))") if is_sqlite else sa.text('now()')

    op.create_table(
        'admin_approval_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('approval_id', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('action_class', sa.String(length=32), nullable=False),
        sa.Column('target_id', sa.String(length=128), nullable=False),
        sa.Column('endpoint', sa.String(length=255), nullable=True),
        sa.Column('method', sa.String(length=10), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payload', json_type, nullable=False, server_default='{}'),
        sa.Column('payload_fingerprint', sa.String(length=64), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('requester_user_id', sa.String(length=50), nullable=False),
        sa.Column('requester_email', sa.String(length=255), nullable=True),
        sa.Column('reviewer_user_id', sa.String(length=50), nullable=True),
        sa.Column('decision_note', sa.Text(), nullable=True),
        sa.Column('executed_by', sa.String(length=50), nullable=True),
        sa.Column('result', json_type, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('executed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('approval_id')
    )
    op.create_index('ix_admin_approval_requests_approval_id', 'admin_approval_requests', ['approval_id'])
    op.create_index('ix_admin_approval_requests_target_id', 'admin_approval_requests', ['target_id'])
    op.create_index('ix_admin_approval_requests_status', 'admin_approval_requests', ['status'])
    op.create_index('ix_admin_approval_requests_requester_user_id', 'admin_approval_requests', ['requester_user_id'])
    op.create_index('ix_admin_approval_requests_created_at', 'admin_approval_requests', ['created_at'])
    # At most one pending request per (target, action class)
    op.create_index(
        'uq_admin_approval_pending_target',
        'admin_approval_requests',
        ['target_id', 'action_class'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('uq_admin_approval_pending_target', table_name='admin_approval_requests')
    op.drop_index('ix_admin_approval_requests_created_at', table_name='admin_approval_requests')
    op.drop_index('ix_admin_approval_requests_requester_user_id', table_name='admin_approval_requests')
    op.drop_index('ix_admin_approval_requests_status', table_name='admin_approval_requests')
    op.drop_index('ix_admin_approval_requests_target_id', table_name='admin_approval_requests')
    op.drop_index('ix_admin_approval_requests_approval_id', table_name='admin_approval_requests')
    op.drop_table('admin_approval_requests')

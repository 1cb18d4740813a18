"""add target_ids to admin_approval_requests for bulk actions

Revision ID: 003
Revises: 002
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '003'
down_revision = '002'
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == 'sqlite'
    json_type = sa.JSON() if is_sqlite else postgresql.JSONB(astext_type=sa.Text())

    op.add_column('admin_approval_requests', sa.Column('target_ids', json_type, nullable=True))


def downgrade() -> None:
    op.drop_column('admin_approval_requests', 'target_ids')

"""add claimed_at to payment_events

Revision ID: b41e6f0d93c2
Revises: 7c2d91a4e5b0
Create Date: 2026-10-19 16:41:08.502917

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b41e6f0d93c2'
down_revision = '7c2d91a4e5b0'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('payment_events', schema=None) as batch_op:
        batch_op.add_column(sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True))


def downgrade():
    with op.batch_alter_table('payment_events', schema=None) as batch_op:
        batch_op.drop_column('claimed_at')

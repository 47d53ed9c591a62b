"""initial schema: reservations, customers, sites, payment ledger, deploy queue

Revision ID: 7c2d91a4e5b0
Revises:
Create Date: 2026-10-19 10:12:44.318204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2d91a4e5b0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('slug_reservations',
    sa.Column('slug', sa.String(length=50), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=True),
    sa.Column('session_id', sa.String(length=255), nullable=True),
    sa.Column('template_id', sa.String(length=50), nullable=True),
    sa.Column('intake_data', sa.JSON(), nullable=True),
    sa.Column('generated_content', sa.JSON(), nullable=True),
    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('converted', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('slug')
    )
    op.create_index('ix_slug_reservations_expiry', 'slug_reservations', ['expires_at', 'converted'])

    op.create_table('customers',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email'),
    sa.UniqueConstraint('stripe_customer_id')
    )

    op.create_table('sites',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('customer_id', sa.String(length=36), nullable=False),
    sa.Column('slug', sa.String(length=50), nullable=False),
    sa.Column('plan', sa.String(length=50), nullable=True),
    sa.Column('template_id', sa.String(length=50), nullable=True),
    sa.Column('intake_data', sa.JSON(), nullable=True),
    sa.Column('generated_content', sa.JSON(), nullable=True),
    sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
    sa.Column('cloudflare_project_id', sa.String(length=255), nullable=True),
    sa.Column('published_url', sa.String(length=500), nullable=True),
    sa.Column('status', sa.Enum('active', 'suspended', name='sitestatus', native_enum=False, length=20), nullable=False),
    sa.Column('deployed_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('suspended_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('slug'),
    sa.UniqueConstraint('stripe_subscription_id')
    )

    op.create_table('payment_events',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
    sa.Column('event_type', sa.String(length=255), nullable=False),
    sa.Column('payload', sa.JSON(), nullable=True),
    sa.Column('processed', sa.Boolean(), nullable=False),
    sa.Column('customer_id', sa.String(length=36), nullable=True),
    sa.Column('site_id', sa.String(length=36), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
    sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('stripe_event_id')
    )
    op.create_index('ix_payment_events_site_type', 'payment_events', ['site_id', 'event_type'])

    op.create_table('deploy_jobs',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('site_id', sa.String(length=36), nullable=False),
    sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'failed', name='deploystatus', native_enum=False, length=20), nullable=False),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['site_id'], ['sites.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_deploy_jobs_status_created', 'deploy_jobs', ['status', 'created_at'])


def downgrade():
    op.drop_index('ix_deploy_jobs_status_created', table_name='deploy_jobs')
    op.drop_table('deploy_jobs')
    op.drop_index('ix_payment_events_site_type', table_name='payment_events')
    op.drop_table('payment_events')
    op.drop_table('sites')
    op.drop_table('customers')
    op.drop_index('ix_slug_reservations_expiry', table_name='slug_reservations')
    op.drop_table('slug_reservations')

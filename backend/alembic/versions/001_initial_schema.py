"""initial schema: work items, status events, communications, webhook log

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '001'
down_revision = None
branch_labels = None
depends_on = None

WORK_ITEM_STATUSES = (
    'needs_design_review', 'needs_customer_fix', 'approved', 'ready_for_batch',
    'new_inquiry', 'future_event_monitoring', 'info_sent', 'design_fee_sent', 'design_fee_paid',
    'in_design', 'proof_sent', 'awaiting_approval', 'invoice_sent',
    'deposit_paid_ready_for_batch', 'on_payment_terms_ready_for_batch', 'paid_ready_for_batch',
    'batched', 'shipped', 'closed', 'closed_won', 'closed_lost', 'closed_event_cancelled',
)
EMAIL_CATEGORIES = ('primary', 'promotional', 'spam', 'notifications')


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    op.create_table(
        'work_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('source', sa.String(20), nullable=False),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('shopify_order_id', sa.String(50), nullable=True, unique=True),
        sa.Column('shopify_order_number', sa.String(50), nullable=True),
        sa.Column('design_fee_order_id', sa.String(50), nullable=True, unique=True),
        sa.Column('design_fee_order_number', sa.String(50), nullable=True),
        sa.Column('shopify_financial_status', sa.String(30), nullable=True),
        sa.Column('shopify_fulfillment_status', sa.String(30), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('alternate_emails', postgresql.ARRAY(sa.String(255)), nullable=False, server_default='{}'),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('grip_color', sa.String(100), nullable=True),
        sa.Column('event_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(40), nullable=False),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_waiting', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('next_follow_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('snoozed_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_contact_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reason_included', postgresql.JSONB(), nullable=True, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("type IN ('customify_order', 'assisted_project')", name='chk_work_item_type'),
        sa.CheckConstraint("source IN ('shopify', 'email', 'form', 'manual')", name='chk_work_item_source'),
        sa.CheckConstraint(_in('status', WORK_ITEM_STATUSES), name='chk_work_item_status'),
    )
    op.create_index('ix_work_items_type', 'work_items', ['type'])
    op.create_index('ix_work_items_status', 'work_items', ['status'])
    op.create_index('ix_work_items_shopify_order_number', 'work_items', ['shopify_order_number'])
    op.create_index('ix_work_items_customer_id', 'work_items', ['customer_id'])
    op.create_index('ix_work_items_customer_email', 'work_items', ['customer_email'])
    op.create_index('ix_work_items_closed_at', 'work_items', ['closed_at'])
    op.create_index('ix_work_items_next_follow_up_at', 'work_items', ['next_follow_up_at'])
    op.create_index('ix_work_items_updated_at', 'work_items', ['updated_at'])
    op.create_index(
        'idx_work_items_open_email', 'work_items', ['customer_email'],
        postgresql_where=sa.text('closed_at IS NULL'),
    )

    op.create_table(
        'work_item_status_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('work_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('work_items.id'), nullable=False),
        sa.Column('from_status', sa.String(40), nullable=True),
        sa.Column('to_status', sa.String(40), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('changed_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_work_item_status_events_work_item_id', 'work_item_status_events', ['work_item_id'])
    op.create_index('ix_work_item_status_events_created_at', 'work_item_status_events', ['created_at'])

    op.create_table(
        'communications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('from_email', sa.String(255), nullable=False),
        sa.Column('to_emails', postgresql.ARRAY(sa.String(255)), nullable=False, server_default='{}'),
        sa.Column('subject', sa.Text(), nullable=True),
        sa.Column('body_html', sa.Text(), nullable=True),
        sa.Column('body_preview', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider', sa.String(20), nullable=False, server_default='m365'),
        sa.Column('provider_message_id', sa.String(512), nullable=True, unique=True),
        sa.Column('internet_message_id', sa.String(512), nullable=True, unique=True),
        sa.Column('provider_thread_id', sa.String(512), nullable=True),
        sa.Column('work_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('work_items.id'), nullable=True),
        sa.Column('triage_status', sa.String(20), nullable=False, server_default='untriaged'),
        sa.Column('category', sa.String(20), nullable=False, server_default='primary'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("direction IN ('inbound', 'outbound')", name='chk_communication_direction'),
        sa.CheckConstraint(
            _in('triage_status', (
                'untriaged', 'triaged', 'created_lead', 'attached', 'flagged_support', 'archived',
            )),
            name='chk_communication_triage_status',
        ),
        sa.CheckConstraint(_in('category', EMAIL_CATEGORIES), name='chk_communication_category'),
    )
    op.create_index('ix_communications_from_email', 'communications', ['from_email'])
    op.create_index('ix_communications_received_at', 'communications', ['received_at'])
    op.create_index('ix_communications_provider_thread_id', 'communications', ['provider_thread_id'])
    op.create_index('ix_communications_work_item_id', 'communications', ['work_item_id'])
    op.create_index('ix_communications_triage_status', 'communications', ['triage_status'])
    op.create_index('idx_communications_fingerprint', 'communications', ['from_email', 'subject', 'received_at'])

    op.create_table(
        'webhook_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('external_event_id', sa.String(255), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('processing_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('provider', 'external_event_id', name='uq_webhook_provider_event'),
        sa.CheckConstraint(
            _in('processing_status', ('pending', 'processing', 'completed', 'failed', 'skipped')),
            name='chk_webhook_processing_status',
        ),
        sa.CheckConstraint('retry_count >= 0', name='chk_webhook_retry_count_non_negative'),
    )
    op.create_index('ix_webhook_events_processing_status', 'webhook_events', ['processing_status'])
    op.create_index('ix_webhook_events_created_at', 'webhook_events', ['created_at'])

    op.create_table(
        'email_filters',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('filter_type', sa.String(20), nullable=False),
        sa.Column('pattern', sa.String(255), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("filter_type IN ('domain', 'exact_email')", name='chk_email_filter_type'),
        sa.CheckConstraint(_in('category', EMAIL_CATEGORIES), name='chk_email_filter_category'),
        sa.UniqueConstraint('filter_type', 'pattern', name='uq_email_filter_pattern'),
    )


def downgrade() -> None:
    op.drop_table('email_filters')
    op.drop_table('webhook_events')
    op.drop_table('communications')
    op.drop_table('work_item_status_events')
    op.drop_table('work_items')

"""SQLAlchemy models for work items, communications and the webhook log."""
from sqlalchemy import (
    Boolean, Column, String, Integer, Date, DateTime, Text,
    ForeignKey, CheckConstraint, Index, UniqueConstraint, ARRAY
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .database import Base
from .services.work_item_status import ALL_STATUSES
from .services.webhook_state import WEBHOOK_STATUSES


class WorkItem(Base):
    """One unit of fulfillment work (a Customify order or an assisted project)."""
    __tablename__ = "work_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(30), nullable=False, index=True)
    source = Column(String(20), nullable=False)
    title = Column(String(500), nullable=True)

    # Production order and design fee order are separate buckets.
    shopify_order_id = Column(String(50), nullable=True, unique=True)
    shopify_order_number = Column(String(50), nullable=True, index=True)
    design_fee_order_id = Column(String(50), nullable=True, unique=True)
    design_fee_order_number = Column(String(50), nullable=True)
    shopify_financial_status = Column(String(30), nullable=True)
    shopify_fulfillment_status = Column(String(30), nullable=True)

    customer_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    customer_email = Column(String(255), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    alternate_emails = Column(ARRAY(String(255)), nullable=False, default=list)

    quantity = Column(Integer, nullable=True)
    grip_color = Column(String(100), nullable=True)
    event_date = Column(Date, nullable=True)

    status = Column(String(40), nullable=False, index=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    is_waiting = Column(Boolean, nullable=False, default=False)
    next_follow_up_at = Column(DateTime(timezone=True), nullable=True, index=True)
    snoozed_until = Column(DateTime(timezone=True), nullable=True)
    last_contact_at = Column(DateTime(timezone=True), nullable=True)

    # Detection provenance for humans; never read back by the engine.
    reason_included = Column(JSONB, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), index=True)

    __table_args__ = (
        CheckConstraint(
            type.in_(['customify_order', 'assisted_project']),
            name='chk_work_item_type'
        ),
        CheckConstraint(
            source.in_(['shopify', 'email', 'form', 'manual']),
            name='chk_work_item_source'
        ),
        CheckConstraint(
            status.in_(sorted(ALL_STATUSES)),
            name='chk_work_item_status'
        ),
        Index('idx_work_items_open_email', 'customer_email', postgresql_where=(closed_at == None)),
    )

    # Relationships
    status_events = relationship(
        "WorkItemStatusEvent",
        back_populates="work_item",
        order_by="WorkItemStatusEvent.created_at",
    )
    communications = relationship("Communication", back_populates="work_item")


class WorkItemStatusEvent(Base):
    """Append-only status timeline; the only place from_status is recorded."""
    __tablename__ = "work_item_status_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    work_item_id = Column(UUID(as_uuid=True), ForeignKey("work_items.id"), nullable=False, index=True)
    from_status = Column(String(40), nullable=True)
    to_status = Column(String(40), nullable=False)
    note = Column(Text, nullable=True)
    changed_by = Column(String(100), nullable=True)  # "system:<source>" or a user reference
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    work_item = relationship("WorkItem", back_populates="status_events")


class Communication(Base):
    """Imported mailbox message."""
    __tablename__ = "communications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    direction = Column(String(10), nullable=False)
    from_email = Column(String(255), nullable=False, index=True)
    to_emails = Column(ARRAY(String(255)), nullable=False, default=list)
    subject = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)
    body_preview = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    provider = Column(String(20), nullable=False, default='m365')
    provider_message_id = Column(String(512), nullable=True, unique=True)
    internet_message_id = Column(String(512), nullable=True, unique=True)
    provider_thread_id = Column(String(512), nullable=True, index=True)
    work_item_id = Column(UUID(as_uuid=True), ForeignKey("work_items.id"), nullable=True, index=True)
    triage_status = Column(String(20), nullable=False, default='untriaged', index=True)
    category = Column(String(20), nullable=False, default='primary')
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(direction.in_(['inbound', 'outbound']), name='chk_communication_direction'),
        CheckConstraint(
            triage_status.in_([
                'untriaged', 'triaged', 'created_lead', 'attached', 'flagged_support', 'archived',
            ]),
            name='chk_communication_triage_status'
        ),
        CheckConstraint(
            category.in_(['primary', 'promotional', 'spam', 'notifications']),
            name='chk_communication_category'
        ),
        Index('idx_communications_fingerprint', 'from_email', 'subject', 'received_at'),
    )

    work_item = relationship("WorkItem", back_populates="communications")


class WebhookEvent(Base):
    """Idempotency ledger: one row per (provider, external_event_id)."""
    __tablename__ = "webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider = Column(String(20), nullable=False)
    event_type = Column(String(100), nullable=False)
    external_event_id = Column(String(255), nullable=False)
    payload = Column(JSONB, nullable=False, default=dict)
    processing_status = Column(String(20), nullable=False, default='pending', index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    processing_error = Column(Text, nullable=True)
    processing_started_at = Column(DateTime(timezone=True), nullable=True)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('provider', 'external_event_id', name='uq_webhook_provider_event'),
        CheckConstraint(
            processing_status.in_(sorted(WEBHOOK_STATUSES)),
            name='chk_webhook_processing_status'
        ),
        CheckConstraint(retry_count >= 0, name='chk_webhook_retry_count_non_negative'),
    )


class EmailFilter(Base):
    """Manual sender -> category override used by email categorization."""
    __tablename__ = "email_filters"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    filter_type = Column(String(20), nullable=False)
    pattern = Column(String(255), nullable=False)
    category = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(filter_type.in_(['domain', 'exact_email']), name='chk_email_filter_type'),
        CheckConstraint(
            category.in_(['primary', 'promotional', 'spam', 'notifications']),
            name='chk_email_filter_category'
        ),
        UniqueConstraint('filter_type', 'pattern', name='uq_email_filter_pattern'),
    )

"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Optional
from datetime import date, datetime
from uuid import UUID


# Work items
class WorkItemResponse(BaseModel):
    id: UUID
    type: str
    source: str
    title: Optional[str] = None
    status: str
    shopify_order_id: Optional[str] = None
    shopify_order_number: Optional[str] = None
    design_fee_order_id: Optional[str] = None
    design_fee_order_number: Optional[str] = None
    shopify_financial_status: Optional[str] = None
    shopify_fulfillment_status: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    alternate_emails: list[str] = Field(default_factory=list)
    quantity: Optional[int] = None
    grip_color: Optional[str] = None
    event_date: Optional[date] = None
    is_waiting: bool = False
    next_follow_up_at: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None
    last_contact_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class StatusEventResponse(BaseModel):
    id: UUID
    work_item_id: UUID
    from_status: Optional[str] = None
    to_status: str
    note: Optional[str] = None
    changed_by: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TransitionRequest(BaseModel):
    to_status: str = Field(..., min_length=1)
    note: Optional[str] = None
    changed_by: Optional[str] = None


class TransitionResponse(BaseModel):
    work_item: WorkItemResponse
    event: Optional[StatusEventResponse] = None
    warning: Optional[str] = None


class SnoozeRequest(BaseModel):
    days: int


class ToggleWaitingRequest(BaseModel):
    """Omit ``is_waiting`` to flip the current flag."""
    is_waiting: Optional[bool] = None


class LinkEmailRequest(BaseModel):
    email_id: UUID = Field(..., alias="emailId")
    model_config = ConfigDict(populate_by_name=True)


class TimelineEntryResponse(BaseModel):
    kind: str
    at: Optional[datetime] = None
    summary: str
    reference_id: UUID
    model_config = ConfigDict(from_attributes=True)


class StatusOptionsResponse(BaseModel):
    work_item_id: UUID
    work_item_type: str
    current_status: str
    is_closed: bool
    groups: list[dict[str, Any]]
    model_config = ConfigDict(from_attributes=True)


# Communications
class CommunicationResponse(BaseModel):
    id: UUID
    direction: str
    from_email: str
    subject: Optional[str] = None
    body_preview: Optional[str] = None
    received_at: Optional[datetime] = None
    work_item_id: Optional[UUID] = None
    triage_status: str
    category: str
    model_config = ConfigDict(from_attributes=True)


class EmailImportRequest(BaseModel):
    """Either a raw Graph message or the id of a message to fetch."""
    message_id: Optional[str] = Field(default=None, alias="messageId")
    message: Optional[dict[str, Any]] = None
    model_config = ConfigDict(populate_by_name=True)


class EmailImportResponse(BaseModel):
    action: str
    communication_id: Optional[UUID] = None
    work_item_id: Optional[UUID] = None
    direction: Optional[str] = None
    strategy: Optional[str] = None
    error: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class CleanupRequest(BaseModel):
    dry_run: bool = True


class DuplicateGroupResponse(BaseModel):
    strategy: str
    key: str
    keep_id: UUID
    duplicate_ids: list[UUID]
    model_config = ConfigDict(from_attributes=True)


class CleanupResponse(BaseModel):
    dry_run: bool
    duplicate_count: int
    deleted_count: int
    groups: list[DuplicateGroupResponse]


# Orders
class OrderImportRequest(BaseModel):
    order_id: str = Field(..., alias="orderId", min_length=1)
    model_config = ConfigDict(populate_by_name=True)


class OrderImportResponse(BaseModel):
    action: str
    work_item_id: Optional[UUID] = None
    order_type: Optional[str] = None
    emails_linked: int = 0
    message: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


# Webhooks
class WebhookReceiptResponse(BaseModel):
    webhook_event_id: Optional[UUID] = None
    status: str
    processed: bool
    message: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ReprocessRequest(BaseModel):
    webhook_id: UUID = Field(..., alias="webhookId")
    model_config = ConfigDict(populate_by_name=True)


class WebhookEventResponse(BaseModel):
    id: UUID
    provider: str
    event_type: str
    external_event_id: str
    processing_status: str
    retry_count: int
    processing_error: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    last_retry_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class FollowUpChangeResponse(BaseModel):
    work_item_id: UUID
    old_follow_up_at: Optional[datetime] = None
    new_follow_up_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class RecalculateResponse(BaseModel):
    success: bool = True
    updated: int
    timestamp: datetime
    changes: list[FollowUpChangeResponse]

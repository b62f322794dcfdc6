from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from models.enums import (
    BookingStatus,
    ConversationStatus,
    ConversationType,
    MessageStatus,
    MessageType,
    PaymentProvider,
    PaymentStatus,
)


class UserPublicSchema(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: EmailStr
    avatar: Optional[str] = None

    model_config = {"from_attributes": True}


class BookingCreate(BaseModel):
    property_id: uuid.UUID
    check_in_date: datetime
    check_out_date: datetime
    number_of_guests: int = 1


class BookingStatusUpdate(BaseModel):
    booking_status: BookingStatus

    @field_validator("booking_status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in BookingStatus:
            raise ValueError("Invalid booking status")
        return v


class BookingOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    property_id: uuid.UUID
    check_in_date: datetime
    check_out_date: datetime
    number_of_guests: int
    total_amount: Decimal
    booking_status: BookingStatus
    payment_status: PaymentStatus
    payment_reference: Optional[str]
    payment_id: Optional[uuid.UUID]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingCreateOut(BaseModel):
    booking: BookingOut
    payment_url: str
    reference: str


class PaymentOut(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    amount: Decimal
    reference: str
    status: PaymentStatus
    gateway: PaymentProvider
    channel: Optional[str]
    paid_at: Optional[datetime]

    model_config = {"from_attributes": True}


class PaymentConfirmationOut(BaseModel):
    outcome: str
    booking: BookingOut
    payment: Optional[PaymentOut] = None

    model_config = {"from_attributes": True}


class PaginationMeta(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next: bool
    has_prev: bool
    query: Optional[str] = None


class PaginatedBookings(BaseModel):
    items: List[BookingOut]
    pagination: PaginationMeta


class BookingStatsOut(BaseModel):
    total: int
    by_status: Dict[str, int]
    revenue: Decimal


class ConversationCreate(BaseModel):
    participant_id: uuid.UUID
    property_id: Optional[uuid.UUID] = None
    type: ConversationType = ConversationType.GENERAL


class ConversationOut(BaseModel):
    id: uuid.UUID
    title: str
    type: ConversationType
    status: ConversationStatus
    property_id: Optional[uuid.UUID]
    participant_ids: List[uuid.UUID] = Field(default_factory=list)
    last_message_id: Optional[uuid.UUID]
    last_message_at: Optional[datetime]
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("meta", mode="before")
    @classmethod
    def plain_meta(cls, v):
        return dict(v or {})


class ConversationListItem(BaseModel):
    conversation: ConversationOut
    unread_count: int = 0
    other_participant: Optional[UserPublicSchema] = None

    model_config = {"from_attributes": True}


class PaginatedConversations(BaseModel):
    items: List[ConversationListItem]
    pagination: PaginationMeta


class ChatStatsOut(BaseModel):
    total_conversations: int
    unread_conversations: int
    total_messages: int
    property_inquiries: int
    recent_messages: int


class MessageCreate(BaseModel):
    content: str
    type: MessageType = MessageType.TEXT
    reply_to: Optional[uuid.UUID] = None


class MessageUpdate(BaseModel):
    content: str


class MarkReadIn(BaseModel):
    message_id: Optional[uuid.UUID] = None


class MessageOut(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    seq: int
    sender_id: uuid.UUID
    recipient_id: Optional[uuid.UUID]
    content: str
    type: MessageType
    status: MessageStatus
    is_edited: bool
    edited_at: Optional[datetime]
    is_deleted: bool
    reply_to_id: Optional[uuid.UUID]
    created_at: datetime

    model_config = {"from_attributes": True}


class PaginatedMessages(BaseModel):
    items: List[MessageOut]
    pagination: PaginationMeta


class ConversationEventIn(BaseModel):
    conversation_id: uuid.UUID


class SendMessageEventIn(ConversationEventIn):
    content: str
    type: MessageType = MessageType.TEXT
    reply_to: Optional[uuid.UUID] = None


class MarkAsReadEventIn(ConversationEventIn):
    message_id: Optional[uuid.UUID] = None


class PaystackWebhookEvent(BaseModel):
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)

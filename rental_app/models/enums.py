from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    LANDLORD = "landlord"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentProvider(str, Enum):
    PAYSTACK = "paystack"


class ConversationType(str, Enum):
    PROPERTY_INQUIRY = "property_inquiry"
    GENERAL = "general"
    SUPPORT = "support"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    BLOCKED = "blocked"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"
    PROPERTY_SHARE = "property_share"


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


# Admin-driven moves; CONFIRMED is additionally gated on payment.
BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

DELETED_MESSAGE_PLACEHOLDER = "This message was deleted"

PROPERTY_INQUIRY_TITLE = "Property Inquiry"
GENERAL_CHAT_TITLE = "General Chat"

"""Domain Enums"""
from enum import Enum


class BookingStatus(str, Enum):
    DRAFT = "draft"
    PENDING_PAYMENT = "pending_payment"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.EXPIRED,
    BookingStatus.CANCELLED,
})

# Statuses in which the payment window is still running
AWAITING_EVIDENCE_STATUSES = frozenset({
    BookingStatus.DRAFT,
    BookingStatus.PENDING_PAYMENT,
})


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    PROMPTPAY = "promptpay"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"


class AssetKind(str, Enum):
    """Upload partitions, the value is the directory name under the upload root"""
    VILLA = "villa"
    QR = "QR"
    ROOMS = "rooms"
    SLIPS = "slips"

"""Status enumerations persisted by name.

These values are read by payout jobs and dashboards outside this service;
renaming a member is a breaking change.
"""
import enum


class PurchaseStatus(str, enum.Enum):
    """Payment-level settlement state"""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class CommissionStatus(str, enum.Enum):
    """Commission payout pipeline state"""
    PENDING = "PENDING"
    AWAITING_REFUND_WINDOW = "AWAITING_REFUND_WINDOW"
    PENDING_CREATOR_PAYMENT = "PENDING_CREATOR_PAYMENT"
    READY_FOR_PAYOUT = "READY_FOR_PAYOUT"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    CHARGEBACK = "CHARGEBACK"


# States a purchase waits in before the marketer can be paid
WAITING_COMMISSION_STATUSES = (
    CommissionStatus.PENDING,
    CommissionStatus.PENDING_CREATOR_PAYMENT,
    CommissionStatus.AWAITING_REFUND_WINDOW,
)


class AdjustmentReason(str, enum.Enum):
    REFUND = "REFUND"
    CHARGEBACK = "CHARGEBACK"
    CHARGEBACK_REVERSAL = "CHARGEBACK_REVERSAL"


class AdjustmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPLIED = "APPLIED"
    REVERSED = "REVERSED"


class ContractStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAUSED = "PAUSED"


class CouponStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class CreatorPaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class NotificationType(str, enum.Enum):
    SALE = "SALE"
    COMMISSION_DUE = "COMMISSION_DUE"
    NEW_SALE = "NEW_SALE"
    REFUND = "REFUND"
    CHARGEBACK = "CHARGEBACK"
    SYSTEM = "SYSTEM"


class UserRole(str, enum.Enum):
    CREATOR = "creator"
    MARKETER = "marketer"

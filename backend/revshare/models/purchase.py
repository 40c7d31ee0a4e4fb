"""Purchase model"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id
from revshare.models.enums import CommissionStatus, PurchaseStatus


class Purchase(Base):
    """One payment event, attributed (or not) to a marketer"""
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=new_id)

    # Stripe identity; the event id is the idempotency key, the rest are lookup keys for later events
    stripe_event_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_charge_id = Column(String(255), nullable=True, index=True)
    stripe_invoice_id = Column(String(255), nullable=True, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)

    # Attribution
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True, index=True)
    marketer_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    creator_payment_id = Column(String(36), ForeignKey("creator_payments.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_email = Column(String(255), nullable=True)

    # Money (integer minor units)
    amount = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False, default="usd")
    commission_amount = Column(Integer, nullable=False, default=0)  # Current, possibly adjusted
    commission_amount_original = Column(Integer, nullable=False, default=0)  # Set once at creation

    # Refunds
    refunded_amount = Column(Integer, nullable=False, default=0)  # Cumulative, never decreases, capped at amount
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    stripe_refund_ids = Column(JSON, default=list)  # Refund ids already folded into refunded_amount
    refunds_tracked_by_charge = Column(Boolean, nullable=False, default=False)  # A charge-level refunded total has been applied
    refund_window_days = Column(Integer, nullable=False)
    refund_eligible_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Disputes
    dispute_id = Column(String(255), nullable=True, index=True)
    dispute_status = Column(String(50), nullable=True)
    chargeback_at = Column(DateTime(timezone=True), nullable=True)

    # Status
    status = Column(Enum(PurchaseStatus, name="purchase_status", native_enum=False, length=40),
                    default=PurchaseStatus.PENDING, nullable=False)
    commission_status = Column(Enum(CommissionStatus, name="commission_status", native_enum=False, length=40),
                               default=CommissionStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="purchases")
    coupon = relationship("Coupon")
    marketer = relationship("User", foreign_keys=[marketer_id])
    creator_payment = relationship("CreatorPayment", back_populates="purchases")
    adjustments = relationship("CommissionAdjustment", back_populates="purchase")

    __table_args__ = (
        Index('ix_purchases_project_charge', 'project_id', 'stripe_charge_id'),
        Index('ix_purchases_commission_status_eligible', 'commission_status', 'refund_eligible_at'),
    )

"""CreatorPayment model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id
from revshare.models.enums import CreatorPaymentStatus


class CreatorPayment(Base):
    """Payout invoice a founder pays to fund the commissions of its purchases"""
    __tablename__ = "creator_payments"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(CreatorPaymentStatus, name="creator_payment_status", native_enum=False, length=20),
                    default=CreatorPaymentStatus.PENDING, nullable=False)
    amount_total = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="usd")
    stripe_checkout_session_id = Column(String(255), nullable=True, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    creator = relationship("User")
    purchases = relationship("Purchase", back_populates="creator_payment")

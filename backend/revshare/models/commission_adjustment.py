"""CommissionAdjustment model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id
from revshare.models.enums import AdjustmentReason, AdjustmentStatus


class CommissionAdjustment(Base):
    """Append-only correction to an already-settled commission.

    Negative amounts claw commission back, positive amounts restore it. Rows are
    never deleted; a reversal is a new row plus a status flip on the originals.
    """
    __tablename__ = "commission_adjustments"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    marketer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    purchase_id = Column(String(36), ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Integer, nullable=False)  # Signed minor units
    currency = Column(String(10), nullable=False, default="usd")
    reason = Column(Enum(AdjustmentReason, name="adjustment_reason", native_enum=False, length=40), nullable=False)
    status = Column(Enum(AdjustmentStatus, name="adjustment_status", native_enum=False, length=40),
                    default=AdjustmentStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    purchase = relationship("Purchase", back_populates="adjustments")
    creator = relationship("User", foreign_keys=[creator_id])
    marketer = relationship("User", foreign_keys=[marketer_id])
    project = relationship("Project")

    __table_args__ = (
        Index('ix_commission_adjustments_purchase_reason', 'purchase_id', 'reason'),
    )

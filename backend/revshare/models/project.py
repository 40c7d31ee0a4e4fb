"""Project model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id


class Project(Base):
    """A founder's product; purchases are recorded against it"""
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    creator_stripe_account_id = Column(String(255), unique=True, nullable=True, index=True)  # Stripe Connect account
    refund_window_days = Column(Integer, nullable=True)  # Falls back to platform default when null
    platform_commission_percent = Column(Numeric(6, 4), nullable=True)  # Decimal rate, e.g. 0.05
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    owner = relationship("User", back_populates="projects")
    contracts = relationship("Contract", back_populates="project", cascade="all, delete-orphan")
    coupon_templates = relationship("CouponTemplate", back_populates="project", cascade="all, delete-orphan")
    coupons = relationship("Coupon", back_populates="project", cascade="all, delete-orphan")
    purchases = relationship("Purchase", back_populates="project")

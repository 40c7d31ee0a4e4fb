"""Coupon and CouponTemplate models"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id
from revshare.models.enums import CouponStatus


class CouponTemplate(Base):
    """Discount offered by a project that marketers can claim codes against"""
    __tablename__ = "coupon_templates"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    percent_off = Column(Integer, nullable=False)  # Whole percent shown to customers
    stripe_coupon_id = Column(String(255), nullable=False)  # Coupon on the connected account
    status = Column(Enum(CouponStatus, name="coupon_template_status", native_enum=False, length=20),
                    default=CouponStatus.ACTIVE, nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    allowed_marketer_ids = Column(JSON, default=list)  # Empty list means any marketer
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="coupon_templates")
    coupons = relationship("Coupon", back_populates="template")


class Coupon(Base):
    """Binds one Stripe promotion code to a (project, marketer, template)"""
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(String(36), ForeignKey("coupon_templates.id", ondelete="SET NULL"), nullable=True, index=True)
    marketer_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(100), nullable=False)
    stripe_coupon_id = Column(String(255), nullable=False)
    stripe_promotion_code_id = Column(String(255), unique=True, nullable=False, index=True)
    percent_off = Column(Integer, nullable=False)
    commission_percent = Column(Numeric(6, 4), nullable=False)  # Contract rate at claim time
    status = Column(Enum(CouponStatus, name="coupon_status", native_enum=False, length=20),
                    default=CouponStatus.ACTIVE, nullable=False)
    claimed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="coupons")
    template = relationship("CouponTemplate", back_populates="coupons")
    marketer = relationship("User")

    __table_args__ = (
        Index('ix_coupons_template_marketer_status', 'template_id', 'marketer_id', 'status'),
    )

"""Contract model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id
from revshare.models.enums import ContractStatus


class Contract(Base):
    """Approval relationship between a marketer and a project"""
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)  # marketer
    status = Column(Enum(ContractStatus, name="contract_status", native_enum=False, length=20),
                    default=ContractStatus.PENDING, nullable=False)
    commission_percent = Column(Numeric(6, 4), nullable=False)  # Decimal rate, e.g. 0.20
    refund_window_days = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    project = relationship("Project", back_populates="contracts")
    marketer = relationship("User")

    __table_args__ = (
        UniqueConstraint('project_id', 'user_id', name='uq_contracts_project_user'),
    )

"""Event model"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String

from revshare.models.base import Base, new_id


class Event(Base):
    """Append-only audit log of ledger state transitions"""
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    type = Column(String(100), nullable=False, index=True)  # 'PURCHASE_CREATED', 'PURCHASE_REFUNDED', ...
    actor_id = Column(String(36), nullable=True)
    project_id = Column(String(36), nullable=True, index=True)
    subject_type = Column(String(100), nullable=False)
    subject_id = Column(String(36), nullable=False)
    data = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    __table_args__ = (
        Index('ix_events_subject', 'subject_type', 'subject_id'),
    )

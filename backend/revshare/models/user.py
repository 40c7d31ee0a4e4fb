"""User model"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from revshare.models.base import Base, new_id


class User(Base):
    """Founders (creators) and marketers; read model for notification targets"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False)  # 'creator' or 'marketer'
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    projects = relationship("Project", back_populates="owner")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

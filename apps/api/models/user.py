"""User model."""

from sqlalchemy import Boolean, Column, Date, DateTime, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class User(Base):
    """Studio customer account."""
    
    __tablename__ = "users"
    
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True, unique=True, index=True)
    birthday = Column(Date, nullable=True)
    goals = Column(Text, nullable=True)
    additional_info = Column(Text, nullable=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    activation_token = Column(String, nullable=True, unique=True)
    reset_token = Column(String, nullable=True, unique=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    
    # Relationships
    bookings = relationship("Booking", back_populates="user", cascade="all, delete-orphan")
    credit_batches = relationship("CreditBatch", back_populates="user", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")

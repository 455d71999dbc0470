"""CreditBatch model for prepaid class credits."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class CreditBatch(Base):
    """A purchased allotment of class admissions sharing one expiry."""

    __tablename__ = "credit_batches"
    __table_args__ = (
        CheckConstraint("credits_remaining >= 0", name="ck_credit_batches_remaining_non_negative"),
        CheckConstraint("credits_remaining <= credits_total", name="ck_credit_batches_remaining_within_total"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    credits_total = Column(Integer, nullable=False)
    credits_remaining = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    source = Column(String, nullable=False, default="purchase")
    payment_id = Column(String, ForeignKey("payments.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="credit_batches")
    payment = relationship("Payment", back_populates="credit_batches")

"""Payment model recording completed checkout sessions."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Payment(Base):
    """Completed Stripe checkout. One row per checkout session."""

    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    package_id = Column(String, ForeignKey("packages.id"), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    stripe_session_id = Column(String, nullable=False, unique=True, index=True)
    stripe_payment_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="completed")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="payments")
    credit_batches = relationship("CreditBatch", back_populates="payment")

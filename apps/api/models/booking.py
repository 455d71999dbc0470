"""Booking model linking a customer to a class station."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Booking(Base):
    """Confirmed reservation. Cancellation deletes the row."""

    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("user_id", "class_id", name="uq_bookings_user_class"),
        UniqueConstraint("class_id", "station_number", name="uq_bookings_class_station"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(String, ForeignKey("class_sessions.id"), nullable=False, index=True)
    station_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="bookings")
    class_session = relationship("ClassSession", back_populates="bookings")

"""ClassSession model for bookable studio classes."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class ClassSession(Base):
    """A scheduled class with a fixed number of reformer stations."""

    __tablename__ = "class_sessions"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_class_sessions_capacity_positive"),
        CheckConstraint("booked_count >= 0", name="ck_class_sessions_booked_count_non_negative"),
        CheckConstraint("booked_count <= capacity", name="ck_class_sessions_booked_count_within_capacity"),
        CheckConstraint("end_time > start_time", name="ck_class_sessions_end_after_start"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    instructor = Column(String, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    capacity = Column(Integer, nullable=False)
    booked_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bookings = relationship("Booking", back_populates="class_session", cascade="all, delete-orphan")

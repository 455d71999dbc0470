"""Named business failures raised by the booking coordinator."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Expected, caller-recoverable booking outcome."""

    code = "booking_error"
    status_code = 400
    message = "Booking request could not be completed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ClassNotFound(BookingError):
    code = "class_not_found"
    status_code = 404
    message = "Class not found."


class BookingNotFound(BookingError):
    code = "booking_not_found"
    status_code = 404
    message = "You do not have a booking for this class."


class AlreadyBooked(BookingError):
    code = "already_booked"
    status_code = 409
    message = "You have already booked this class."


class NoCreditsAvailable(BookingError):
    code = "no_credits_available"
    status_code = 402
    message = "No credits available. Purchase a package to book classes."


class ClassFull(BookingError):
    code = "class_full"
    status_code = 409
    message = "Class is full."


class NoStationAvailable(BookingError):
    code = "no_station_available"
    status_code = 409
    message = "No reformers available for this class."


class ReservationConflict(BookingError):
    code = "reservation_conflict"
    status_code = 409
    message = "Another customer took that reformer at the same moment. Please try again."

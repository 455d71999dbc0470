"""Models package."""

from .user import User
from .class_session import ClassSession
from .booking import Booking
from .credit_batch import CreditBatch
from .package import Package
from .payment import Payment
from .email_template import EmailTemplate, EmailLog

from sqlmodel import SQLModel
from .user import User
from .practitioner import Practitioner
from .appointment import Appointment
from .payment import Payment

__all__ = [
    "SQLModel",
    "User",
    "Practitioner",
    "Appointment",
    "Payment",
]

"""
Authorization policy.

Every authenticated route calls one of these checks once it has loaded the
resource it is about to expose or mutate. A failed check raises 403.
"""

from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status

from monmentale.db.models import Appointment, Payment, Practitioner, User
from monmentale.db.models.user import ADMIN, PATIENT, PRACTITIONER_ROLES


def forbidden(detail: str = "Not allowed to perform this action") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def is_admin(user: User) -> bool:
    return user.role == ADMIN


def is_patient(user: User) -> bool:
    return user.role == PATIENT


def is_practitioner(user: User) -> bool:
    return user.role in PRACTITIONER_ROLES


def owns_practitioner(user: User, practitioner: Optional[Practitioner]) -> bool:
    return practitioner is not None and practitioner.user_id == user.id


def require_practitioner_role(user: User):
    if not (is_practitioner(user) or is_admin(user)):
        raise forbidden("Only practitioners can perform this action")


def check_appointment_read(user: User, appointment: Appointment, practitioner: Optional[Practitioner]):
    if is_admin(user):
        return
    if is_patient(user) and appointment.patient_id == user.id:
        return
    if is_practitioner(user) and owns_practitioner(user, practitioner):
        return
    raise forbidden("Not allowed to access this appointment")


def check_appointment_create(user: User, patient_id: UUID, practitioner: Practitioner):
    if is_admin(user):
        return
    if is_patient(user) and patient_id == user.id:
        return
    if is_practitioner(user) and owns_practitioner(user, practitioner):
        return
    raise forbidden("Not allowed to book this appointment")


def check_appointment_update(
    user: User,
    appointment: Appointment,
    practitioner: Optional[Practitioner],
    changes: dict,
):
    """Patients may only cancel their own appointment or edit their own notes."""
    if is_admin(user):
        return
    if is_practitioner(user) and owns_practitioner(user, practitioner):
        return
    if is_patient(user) and appointment.patient_id == user.id:
        allowed = {"status", "cancellation", "notes"}
        if set(changes) - allowed:
            raise forbidden("Patients can only cancel an appointment")
        if "status" in changes and changes["status"] != "cancelled":
            raise forbidden("Patients can only cancel an appointment")
        if "practitioner" in (changes.get("notes") or {}):
            raise forbidden("Patients cannot edit practitioner notes")
        return
    raise forbidden("Not allowed to modify this appointment")


def check_payment_create(user: User, appointment: Appointment):
    if is_admin(user):
        return
    if is_patient(user) and appointment.patient_id == user.id:
        return
    raise forbidden("Not allowed to pay for this appointment")


def check_payment_read(user: User, payment: Payment, practitioner: Optional[Practitioner]):
    if is_admin(user):
        return
    if is_patient(user) and payment.patient_id == user.id:
        return
    if is_practitioner(user) and owns_practitioner(user, practitioner):
        return
    raise forbidden("Not allowed to access this payment")


def check_payment_refund(user: User, practitioner: Optional[Practitioner]):
    if is_admin(user):
        return
    if is_practitioner(user) and owns_practitioner(user, practitioner):
        return
    raise forbidden("Not allowed to refund this payment")


def check_practitioner_create(user: User, owner_id: UUID):
    if is_admin(user):
        return
    if is_practitioner(user) and owner_id == user.id:
        return
    raise forbidden("Only practitioners can create their own profile")


def check_practitioner_write(user: User, practitioner: Practitioner):
    if is_admin(user) or owns_practitioner(user, practitioner):
        return
    raise forbidden("Not allowed to modify this practitioner profile")


def check_patient_read(user: User, patient_id: UUID, shares_appointment: bool = False):
    if is_admin(user) or user.id == patient_id:
        return
    if is_practitioner(user) and shares_appointment:
        return
    raise forbidden("Not allowed to access this patient")


def check_patient_write(user: User, patient_id: UUID):
    if is_admin(user) or user.id == patient_id:
        return
    raise forbidden("Not allowed to modify this patient")

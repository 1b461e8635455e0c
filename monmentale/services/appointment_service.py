from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from monmentale.core import permissions
from monmentale.core.logger import logger
from monmentale.core.utils import minutes_of_day, parse_date, parse_time_of_day, weekday_name, window_contains
from monmentale.db.models import Appointment, Practitioner, User
from monmentale.db.models.appointment import ACTIVE_STATUSES
from monmentale.db.models.user import PATIENT
from monmentale.schemas.appointment import (
    AppointmentCreate,
    AppointmentUpdate,
    AppointmentResponse,
    Cancellation,
    FollowUp,
    Location,
    Notes,
    PaymentInfo,
    TimeSlot,
)

TERMINAL_STATUSES = ("completed", "cancelled", "no_show")

ALLOWED_TRANSITIONS = {
    "scheduled": {"confirmed", "cancelled", "no_show"},
    "confirmed": {"in_progress", "cancelled", "no_show"},
    "in_progress": {"completed"},
    "completed": set(),
    "cancelled": set(),
    "no_show": set(),
}

CONFLICT_DETAIL = "Time slot conflicts with an existing appointment"


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def check_transition(current: str, target: str):
    if not can_transition(current, target):
        raise HTTPException(
            status_code=409,
            detail=f"Invalid status transition from {current} to {target}",
        )


def default_price(practitioner: Practitioner, appointment_type: str) -> Decimal:
    if appointment_type == "teleconsultation" and practitioner.price_teleconsultation is not None:
        return practitioner.price_teleconsultation
    if appointment_type == "domicile" and practitioner.price_domicile is not None:
        return practitioner.price_domicile
    return practitioner.price_consultation


def construct_response(appointment: Appointment) -> AppointmentResponse:
    cancellation = None
    if appointment.cancelled_at is not None:
        cancellation = Cancellation(
            cancelled_by=appointment.cancelled_by,
            reason=appointment.cancellation_reason,
            cancelled_at=appointment.cancelled_at,
            refund_amount=float(appointment.refund_amount) if appointment.refund_amount is not None else None,
        )

    return AppointmentResponse(
        id=appointment.id,
        patient=appointment.patient_id,
        practitioner=appointment.practitioner_id,
        appointment_type=appointment.appointment_type,
        status=appointment.status,
        date=appointment.date,
        duration=appointment.duration,
        time_slot=TimeSlot(start=appointment.start_time, end=appointment.end_time),
        location=Location.model_validate(appointment.location) if appointment.location else None,
        reason=appointment.reason,
        notes=Notes(patient=appointment.patient_notes, practitioner=appointment.practitioner_notes),
        documents=appointment.documents or [],
        payment=PaymentInfo(
            amount=float(appointment.price),
            status=appointment.payment_status,
            method=appointment.payment_method,
            transaction_id=appointment.payment_transaction_id,
            paid_at=appointment.paid_at,
        ),
        cancellation=cancellation,
        follow_up=FollowUp.model_validate(appointment.follow_up) if appointment.follow_up else None,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


class AppointmentService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_appointment(self, appointment_id: UUID) -> Appointment:
        appointment = await self.session.get(Appointment, appointment_id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return appointment

    async def get_practitioner(self, practitioner_id: UUID) -> Optional[Practitioner]:
        return await self.session.get(Practitioner, practitioner_id)

    async def get_practitioner_for_user(self, user: User) -> Optional[Practitioner]:
        stmt = select(Practitioner).where(Practitioner.user_id == user.id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def lock_practitioner(self, practitioner_id: UUID) -> Practitioner:
        """
        Take a row lock on the practitioner for the rest of the transaction.

        Every booking and reschedule for a practitioner goes through this lock
        before checking conflicts, so check-then-insert cannot interleave.
        """
        stmt = select(Practitioner).where(Practitioner.id == practitioner_id).with_for_update()
        result = await self.session.execute(stmt)
        practitioner = result.scalars().first()
        if not practitioner or not practitioner.is_active:
            raise HTTPException(status_code=404, detail="Practitioner not found")
        return practitioner

    async def find_conflicts(
        self,
        practitioner_id: UUID,
        appt_date: Union[date, str],
        start_time: str,
        end_time: str,
        exclude_appointment_id: Optional[UUID] = None,
    ) -> List[Appointment]:
        """
        Return the active appointments of a practitioner on a day whose window
        overlaps [start_time, end_time). Windows that merely touch do not
        overlap. This is a point-in-time read; callers that insert afterwards
        must hold the practitioner lock.
        """
        try:
            appt_date = parse_date(appt_date)
            start_time = parse_time_of_day(start_time)
            end_time = parse_time_of_day(end_time)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if start_time >= end_time:
            raise HTTPException(status_code=400, detail="Start time must be before end time")

        stmt = select(Appointment).where(
            Appointment.practitioner_id == practitioner_id,
            Appointment.date == appt_date,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
        )
        if exclude_appointment_id:
            stmt = stmt.where(Appointment.id != exclude_appointment_id)

        result = await self.session.execute(stmt.order_by(Appointment.start_time))
        return result.scalars().all()

    def check_availability(self, practitioner: Practitioner, appt_date: date, start_time: str, end_time: str):
        """Reject windows outside the published weekly availability, if any is published."""
        availability = practitioner.availability or {}
        if not any(availability.values()):
            return
        windows = availability.get(weekday_name(appt_date), [])
        for window in windows:
            if window_contains(window["start"], window["end"], start_time, end_time):
                return
        raise HTTPException(status_code=409, detail="Practitioner is not available at the requested time")

    async def _ensure_slot_free(
        self,
        practitioner: Practitioner,
        appt_date: date,
        start_time: str,
        end_time: str,
        exclude_appointment_id: Optional[UUID] = None,
    ):
        self.check_availability(practitioner, appt_date, start_time, end_time)
        conflicts = await self.find_conflicts(
            practitioner.id, appt_date, start_time, end_time, exclude_appointment_id
        )
        if conflicts:
            logger.info(
                f"Booking conflict for practitioner {practitioner.id} on {appt_date} "
                f"{start_time}-{end_time}: {[str(c.id) for c in conflicts]}"
            )
            raise HTTPException(status_code=409, detail=CONFLICT_DETAIL)

    async def list_appointments(
        self,
        patient_id: Optional[UUID] = None,
        practitioner_id: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> List[Appointment]:
        stmt = select(Appointment)
        if patient_id:
            stmt = stmt.where(Appointment.patient_id == patient_id)
        if practitioner_id:
            stmt = stmt.where(Appointment.practitioner_id == practitioner_id)
        if status:
            stmt = stmt.where(Appointment.status == status)

        stmt = stmt.order_by(Appointment.date.desc(), Appointment.start_time.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def create_appointment(self, data: AppointmentCreate, user: User) -> Appointment:
        patient_id = data.patient
        if patient_id is None:
            if user.role != PATIENT:
                raise HTTPException(status_code=400, detail="Patient is required")
            patient_id = user.id

        patient = await self.session.get(User, patient_id)
        if not patient or patient.role != PATIENT:
            raise HTTPException(status_code=404, detail="Patient not found")

        practitioner = await self.lock_practitioner(data.practitioner)
        permissions.check_appointment_create(user, patient_id, practitioner)

        if practitioner.consultation_types and data.appointment_type not in practitioner.consultation_types:
            raise HTTPException(
                status_code=400,
                detail=f"Practitioner does not offer {data.appointment_type} consultations",
            )

        start_time, end_time = data.time_slot.start, data.time_slot.end
        await self._ensure_slot_free(practitioner, data.date, start_time, end_time)

        if data.payment and data.payment.amount is not None:
            price = Decimal(str(data.payment.amount))
        else:
            price = default_price(practitioner, data.appointment_type)

        notes = data.notes or Notes()
        appointment = Appointment(
            patient_id=patient_id,
            practitioner_id=practitioner.id,
            appointment_type=data.appointment_type,
            status="scheduled",
            date=data.date,
            duration=data.time_slot.minutes,
            start_time=start_time,
            end_time=end_time,
            location=data.location.model_dump(by_alias=True, mode="json") if data.location else None,
            reason=data.reason,
            patient_notes=notes.patient,
            practitioner_notes=notes.practitioner,
            documents=[d.model_dump(by_alias=True, mode="json") for d in data.documents],
            price=price,
            payment_method=data.payment.method if data.payment else None,
        )
        self.session.add(appointment)
        await self.session.commit()
        await self.session.refresh(appointment)

        logger.info(f"Appointment {appointment.id} booked with practitioner {practitioner.id}")
        return appointment

    async def update_appointment(self, appointment_id: UUID, data: AppointmentUpdate, user: User) -> Appointment:
        appointment = await self.get_appointment(appointment_id)
        practitioner = await self.get_practitioner(appointment.practitioner_id)

        changes = data.model_dump(exclude_unset=True)
        permissions.check_appointment_update(user, appointment, practitioner, changes)

        if data.status and data.status != appointment.status:
            check_transition(appointment.status, data.status)
        elif appointment.status in TERMINAL_STATUSES and changes.keys() - {"status", "notes", "documents", "follow_up"}:
            raise HTTPException(status_code=409, detail=f"Appointment is {appointment.status}")

        start_time = data.time_slot.start if data.time_slot else appointment.start_time
        end_time = data.time_slot.end if data.time_slot else appointment.end_time
        window_minutes = minutes_of_day(end_time) - minutes_of_day(start_time)
        if data.duration is not None and data.duration != window_minutes:
            raise HTTPException(status_code=422, detail="duration must match the timeSlot length")

        reschedule = data.date is not None or data.time_slot is not None
        if reschedule:
            new_date = data.date or appointment.date
            target_status = data.status or appointment.status
            if target_status in ACTIVE_STATUSES:
                practitioner = await self.lock_practitioner(appointment.practitioner_id)
                await self._ensure_slot_free(practitioner, new_date, start_time, end_time, appointment.id)
            appointment.date = new_date
            appointment.start_time = start_time
            appointment.end_time = end_time
            appointment.duration = window_minutes

        if data.appointment_type is not None:
            appointment.appointment_type = data.appointment_type
        if "location" in changes:
            appointment.location = data.location.model_dump(by_alias=True, mode="json") if data.location else None
        if "reason" in changes:
            appointment.reason = data.reason
        if data.notes is not None:
            notes_changes = changes["notes"]
            if "patient" in notes_changes:
                appointment.patient_notes = data.notes.patient
            if "practitioner" in notes_changes:
                appointment.practitioner_notes = data.notes.practitioner
        if data.documents is not None:
            appointment.documents = [d.model_dump(by_alias=True, mode="json") for d in data.documents]
        if "follow_up" in changes:
            appointment.follow_up = data.follow_up.model_dump(by_alias=True, mode="json") if data.follow_up else None
        if data.payment is not None:
            if data.payment.method is not None:
                appointment.payment_method = data.payment.method
            if data.payment.amount is not None:
                if appointment.payment_status != "pending":
                    raise HTTPException(status_code=409, detail="Price cannot change once payment has started")
                appointment.price = Decimal(str(data.payment.amount))

        if data.status and data.status != appointment.status:
            if data.status == "cancelled":
                reason = data.cancellation.reason if data.cancellation else None
                self._mark_cancelled(appointment, user, reason)
            appointment.status = data.status

        appointment.updated_at = datetime.utcnow()
        self.session.add(appointment)
        await self.session.commit()
        await self.session.refresh(appointment)
        return appointment

    async def cancel_appointment(self, appointment_id: UUID, user: User, reason: Optional[str] = None) -> Appointment:
        appointment = await self.get_appointment(appointment_id)
        practitioner = await self.get_practitioner(appointment.practitioner_id)
        permissions.check_appointment_update(user, appointment, practitioner, {"status": "cancelled"})

        check_transition(appointment.status, "cancelled")
        self._mark_cancelled(appointment, user, reason)
        appointment.status = "cancelled"
        appointment.updated_at = datetime.utcnow()

        self.session.add(appointment)
        await self.session.commit()
        await self.session.refresh(appointment)
        logger.info(f"Appointment {appointment.id} cancelled by {user.id}")
        return appointment

    def _mark_cancelled(self, appointment: Appointment, user: User, reason: Optional[str]):
        appointment.cancelled_by = user.id
        appointment.cancellation_reason = reason
        appointment.cancelled_at = datetime.utcnow()

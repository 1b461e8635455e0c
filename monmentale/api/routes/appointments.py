from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from monmentale.api.deps import get_current_user
from monmentale.core import permissions
from monmentale.db.models import User
from monmentale.db.session import get_session
from monmentale.schemas.appointment import (
    AppointmentCreate,
    AppointmentEnvelope,
    AppointmentResponse,
    AppointmentUpdate,
    ConflictCheckResponse,
)
from monmentale.schemas.common import AppointmentStatus
from monmentale.services.appointment_service import AppointmentService, construct_response

router = APIRouter()

async def get_appointment_service(session: AsyncSession = Depends(get_session)) -> AppointmentService:
    return AppointmentService(session)

@router.get("/", response_model=List[AppointmentResponse])
async def read_appointments(
    user_id: Optional[UUID] = Query(default=None, alias="userId"),
    practitioner_id: Optional[UUID] = Query(default=None, alias="practitionerId"),
    status: Optional[AppointmentStatus] = None,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    # Non-admins only ever see their own side of the calendar
    if permissions.is_patient(current_user):
        if user_id and user_id != current_user.id:
            raise permissions.forbidden("Not allowed to list these appointments")
        user_id = current_user.id
    elif permissions.is_practitioner(current_user):
        own = await service.get_practitioner_for_user(current_user)
        if own is None or (practitioner_id and practitioner_id != own.id):
            raise permissions.forbidden("Not allowed to list these appointments")
        practitioner_id = own.id

    appointments = await service.list_appointments(user_id, practitioner_id, status)
    return [construct_response(a) for a in appointments]

@router.post("/", response_model=AppointmentEnvelope, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = await service.create_appointment(data, current_user)
    return AppointmentEnvelope(message="Appointment created successfully", appointment=construct_response(appointment))

@router.get("/check-conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    practitioner_id: UUID = Query(alias="practitionerId"),
    date: str = Query(),
    start_time: str = Query(alias="startTime"),
    end_time: str = Query(alias="endTime"),
    exclude_appointment_id: Optional[UUID] = Query(default=None, alias="excludeAppointmentId"),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    practitioner = await service.get_practitioner(practitioner_id)
    if not practitioner:
        raise HTTPException(status_code=404, detail="Practitioner not found")

    conflicts = await service.find_conflicts(practitioner_id, date, start_time, end_time, exclude_appointment_id)
    # Other patients' bookings are only visible to their owners
    visible = []
    for appointment in conflicts:
        try:
            permissions.check_appointment_read(current_user, appointment, practitioner)
        except HTTPException:
            continue
        visible.append(construct_response(appointment))
    return ConflictCheckResponse(available=not conflicts, conflicts=visible)

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def read_appointment(
    appointment_id: UUID,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = await service.get_appointment(appointment_id)
    practitioner = await service.get_practitioner(appointment.practitioner_id)
    permissions.check_appointment_read(current_user, appointment, practitioner)
    return construct_response(appointment)

@router.put("/{appointment_id}", response_model=AppointmentEnvelope)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = await service.update_appointment(appointment_id, data, current_user)
    return AppointmentEnvelope(message="Appointment updated successfully", appointment=construct_response(appointment))

@router.delete("/{appointment_id}", response_model=AppointmentEnvelope)
async def cancel_appointment(
    appointment_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = await service.cancel_appointment(appointment_id, current_user, reason)
    return AppointmentEnvelope(message="Appointment cancelled successfully", appointment=construct_response(appointment))

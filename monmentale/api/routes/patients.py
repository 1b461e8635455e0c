from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from monmentale.api.deps import get_current_user
from monmentale.core import permissions
from monmentale.db.models import User
from monmentale.db.session import get_session
from monmentale.schemas.patient import PatientEnvelope, PatientResponse, PatientUpdate
from monmentale.services.patient_service import PatientService, construct_response, construct_summary

router = APIRouter()

async def get_patient_service(session: AsyncSession = Depends(get_session)) -> PatientService:
    return PatientService(session)

@router.get("/{patient_id}", response_model=PatientResponse)
async def read_patient(
    patient_id: UUID,
    current_user: User = Depends(get_current_user),
    service: PatientService = Depends(get_patient_service),
):
    shares_appointment = False
    if permissions.is_practitioner(current_user):
        shares_appointment = await service.shares_appointment(current_user, patient_id)
    permissions.check_patient_read(current_user, patient_id, shares_appointment)

    patient = await service.get_patient(patient_id)
    return construct_response(patient)

@router.put("/{patient_id}", response_model=PatientEnvelope)
async def update_patient(
    patient_id: UUID,
    data: PatientUpdate,
    current_user: User = Depends(get_current_user),
    service: PatientService = Depends(get_patient_service),
):
    permissions.check_patient_write(current_user, patient_id)
    patient = await service.get_patient(patient_id)
    patient = await service.update_patient(patient, data)
    return PatientEnvelope(message="Profile updated successfully", user=construct_summary(patient))

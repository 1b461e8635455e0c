from datetime import datetime
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from monmentale.db.models import Appointment, Practitioner, User
from monmentale.db.models.user import PATIENT
from monmentale.schemas.patient import PatientResponse, PatientSummary, PatientUpdate, Profile

def construct_response(user: User) -> PatientResponse:
    return PatientResponse(
        id=user.id,
        email=user.email,
        profile=Profile.model_validate(user.profile or {}),
        is_verified=user.is_verified,
        created_at=user.created_at,
    )

def construct_summary(user: User) -> PatientSummary:
    return PatientSummary(
        id=user.id,
        email=user.email,
        profile=Profile.model_validate(user.profile or {}),
    )

class PatientService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_patient(self, patient_id: UUID) -> User:
        user = await self.session.get(User, patient_id)
        if not user or user.role != PATIENT:
            raise HTTPException(status_code=404, detail="Patient not found")
        return user

    async def shares_appointment(self, practitioner_user: User, patient_id: UUID) -> bool:
        """Whether the practitioner account has any appointment with the patient."""
        stmt = (
            select(Appointment.id)
            .join(Practitioner, Practitioner.id == Appointment.practitioner_id)
            .where(
                Practitioner.user_id == practitioner_user.id,
                Appointment.patient_id == patient_id,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def update_patient(self, user: User, data: PatientUpdate) -> User:
        if data.profile is not None:
            changes = data.profile.model_dump(by_alias=True, exclude_unset=True, mode="json")
            # Reassign so the JSON column is flagged dirty
            user.profile = {**(user.profile or {}), **changes}

        user.updated_at = datetime.utcnow()
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user

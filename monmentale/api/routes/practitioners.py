from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from monmentale.api.deps import get_current_user
from monmentale.db.models import User
from monmentale.db.session import get_session
from monmentale.schemas.common import AppointmentType, Specialization
from monmentale.schemas.practitioner import (
    PractitionerCreate,
    PractitionerEnvelope,
    PractitionerPage,
    PractitionerResponse,
    PractitionerUpdate,
)
from monmentale.services.practitioner_service import PractitionerService, construct_response

router = APIRouter()

async def get_practitioner_service(session: AsyncSession = Depends(get_session)) -> PractitionerService:
    return PractitionerService(session)

@router.get("/", response_model=PractitionerPage)
async def read_practitioners(
    specialization: Optional[Specialization] = None,
    city: Optional[str] = None,
    consultation_type: Optional[AppointmentType] = Query(default=None, alias="consultationType"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    service: PractitionerService = Depends(get_practitioner_service),
):
    practitioners, total = await service.get_practitioners(specialization, city, consultation_type, page, limit)
    return PractitionerPage(
        practitioners=[construct_response(p) for p in practitioners],
        total_pages=service.total_pages(total, limit),
        current_page=page,
        total=total,
    )

@router.get("/search/nearby", response_model=List[PractitionerResponse])
async def search_nearby(
    latitude: Optional[float] = Query(default=None, ge=-90, le=90),
    longitude: Optional[float] = Query(default=None, ge=-180, le=180),
    max_distance: float = Query(default=10000, gt=0, alias="maxDistance"),
    service: PractitionerService = Depends(get_practitioner_service),
):
    if latitude is None or longitude is None:
        raise HTTPException(status_code=400, detail="Latitude and longitude are required")

    nearby = await service.search_nearby(latitude, longitude, max_distance)
    return [construct_response(p, distance) for p, distance in nearby]

@router.get("/{practitioner_id}", response_model=PractitionerResponse)
async def read_practitioner(
    practitioner_id: UUID,
    service: PractitionerService = Depends(get_practitioner_service),
):
    practitioner = await service.get_practitioner(practitioner_id)
    return construct_response(practitioner)

@router.post("/", response_model=PractitionerEnvelope, status_code=201)
async def create_practitioner(
    data: PractitionerCreate,
    current_user: User = Depends(get_current_user),
    service: PractitionerService = Depends(get_practitioner_service),
):
    practitioner = await service.create_practitioner(data, current_user)
    return PractitionerEnvelope(
        message="Practitioner profile created successfully",
        practitioner=construct_response(practitioner),
    )

@router.put("/{practitioner_id}", response_model=PractitionerEnvelope)
async def update_practitioner(
    practitioner_id: UUID,
    data: PractitionerUpdate,
    current_user: User = Depends(get_current_user),
    service: PractitionerService = Depends(get_practitioner_service),
):
    practitioner = await service.update_practitioner(practitioner_id, data, current_user)
    return PractitionerEnvelope(
        message="Practitioner profile updated successfully",
        practitioner=construct_response(practitioner),
    )

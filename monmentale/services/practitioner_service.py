import json
import math
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import String, cast
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from monmentale.core import permissions
from monmentale.core.logger import logger
from monmentale.core.utils import bounding_box, haversine_meters
from monmentale.db.models import Practitioner, User
from monmentale.db.models.user import PRACTITIONER_ROLES
from monmentale.schemas.practitioner import (
    Practice,
    PracticeAddress,
    PractitionerCreate,
    PractitionerResponse,
    PractitionerUpdate,
    Prices,
    ProfessionalInfo,
    Statistics,
    Verification,
)
from monmentale.schemas.common import Coordinates


def json_array_contains(column, value: str):
    # JSON arrays are stored as serialized text on every backend we target
    return cast(column, String).contains(json.dumps(value), autoescape=True)


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def construct_response(practitioner: Practitioner, distance: Optional[float] = None) -> PractitionerResponse:
    coordinates = None
    if practitioner.latitude is not None and practitioner.longitude is not None:
        coordinates = Coordinates(latitude=practitioner.latitude, longitude=practitioner.longitude)

    return PractitionerResponse(
        id=practitioner.id,
        user=practitioner.user_id,
        specializations=practitioner.specializations or [],
        professional_info=ProfessionalInfo(
            license_number=practitioner.license_number,
            university=practitioner.university,
            graduation_year=practitioner.graduation_year,
            experience=practitioner.experience,
            languages=practitioner.languages or [],
            description=practitioner.description,
            approach=practitioner.approach,
        ),
        practice=Practice(
            address=PracticeAddress(
                street=practitioner.street,
                city=practitioner.city,
                postal_code=practitioner.postal_code,
                country=practitioner.country,
                coordinates=coordinates,
            ),
            consultation_types=practitioner.consultation_types or [],
            prices=Prices(
                consultation=_money(practitioner.price_consultation),
                teleconsultation=_money(practitioner.price_teleconsultation),
                domicile=_money(practitioner.price_domicile),
            ),
            availability=practitioner.availability or {},
            consultation_duration=practitioner.consultation_duration,
            break_duration=practitioner.break_duration,
        ),
        verification=Verification(
            is_verified=practitioner.is_verified,
            documents=practitioner.verification_documents or [],
            verified_at=practitioner.verified_at,
        ),
        statistics=Statistics(
            total_appointments=practitioner.total_appointments,
            total_patients=practitioner.total_patients,
            average_rating=practitioner.average_rating,
            total_reviews=practitioner.total_reviews,
        ),
        is_active=practitioner.is_active,
        created_at=practitioner.created_at,
        updated_at=practitioner.updated_at,
        distance=round(distance, 1) if distance is not None else None,
    )


class PractitionerService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_practitioner(self, practitioner_id: UUID) -> Practitioner:
        practitioner = await self.session.get(Practitioner, practitioner_id)
        if not practitioner:
            raise HTTPException(status_code=404, detail="Practitioner not found")
        return practitioner

    async def get_practitioners(
        self,
        specialization: Optional[str] = None,
        city: Optional[str] = None,
        consultation_type: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Practitioner], int]:
        """Active, verified practitioners, best rated first."""
        conditions = [Practitioner.is_active == True, Practitioner.is_verified == True]  # noqa: E712
        if specialization:
            conditions.append(json_array_contains(Practitioner.specializations, specialization))
        if city:
            conditions.append(Practitioner.city.ilike(f"%{city}%"))
        if consultation_type:
            conditions.append(json_array_contains(Practitioner.consultation_types, consultation_type))

        count_stmt = select(func.count(Practitioner.id)).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Practitioner)
            .where(*conditions)
            .order_by(Practitioner.average_rating.desc(), Practitioner.created_at)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all(), total

    async def search_nearby(
        self,
        latitude: float,
        longitude: float,
        max_distance: float = 10000,
    ) -> List[Tuple[Practitioner, float]]:
        """Practitioners within max_distance meters, nearest first."""
        min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, max_distance)
        stmt = select(Practitioner).where(
            Practitioner.is_active == True,  # noqa: E712
            Practitioner.is_verified == True,  # noqa: E712
            Practitioner.latitude.is_not(None),
            Practitioner.longitude.is_not(None),
            Practitioner.latitude.between(min_lat, max_lat),
            Practitioner.longitude.between(min_lon, max_lon),
        )
        result = await self.session.execute(stmt)

        nearby = []
        for practitioner in result.scalars().all():
            distance = haversine_meters(latitude, longitude, practitioner.latitude, practitioner.longitude)
            if distance <= max_distance:
                nearby.append((practitioner, distance))
        nearby.sort(key=lambda item: item[1])
        return nearby

    async def _ensure_license_free(self, license_number: str, exclude_id: Optional[UUID] = None):
        stmt = select(Practitioner).where(Practitioner.license_number == license_number)
        if exclude_id:
            stmt = stmt.where(Practitioner.id != exclude_id)
        result = await self.session.execute(stmt)
        if result.scalars().first():
            raise HTTPException(status_code=409, detail="License number already registered")

    def _apply_professional_info(self, practitioner: Practitioner, info: ProfessionalInfo):
        practitioner.license_number = info.license_number
        practitioner.university = info.university
        practitioner.graduation_year = info.graduation_year
        practitioner.experience = info.experience
        practitioner.languages = list(info.languages)
        practitioner.description = info.description
        practitioner.approach = info.approach

    def _apply_practice(self, practitioner: Practitioner, practice: Practice):
        address = practice.address
        practitioner.street = address.street
        practitioner.city = address.city
        practitioner.postal_code = address.postal_code
        practitioner.country = address.country
        practitioner.latitude = address.coordinates.latitude if address.coordinates else None
        practitioner.longitude = address.coordinates.longitude if address.coordinates else None
        practitioner.consultation_types = list(practice.consultation_types)
        practitioner.price_consultation = Decimal(str(practice.prices.consultation))
        practitioner.price_teleconsultation = (
            Decimal(str(practice.prices.teleconsultation)) if practice.prices.teleconsultation is not None else None
        )
        practitioner.price_domicile = (
            Decimal(str(practice.prices.domicile)) if practice.prices.domicile is not None else None
        )
        practitioner.availability = {
            day: [slot.model_dump() for slot in slots] for day, slots in practice.availability.items()
        }
        practitioner.consultation_duration = practice.consultation_duration
        practitioner.break_duration = practice.break_duration

    def _apply_verification(self, practitioner: Practitioner, verification: Verification):
        if verification.is_verified and not practitioner.is_verified:
            practitioner.verified_at = verification.verified_at or datetime.utcnow()
        practitioner.is_verified = verification.is_verified
        practitioner.verification_documents = [
            d.model_dump(by_alias=True, mode="json") for d in verification.documents
        ]

    async def _commit(self, practitioner: Practitioner) -> Practitioner:
        self.session.add(practitioner)
        try:
            await self.session.commit()
        except IntegrityError:
            # Concurrent registration of the same license or owner
            await self.session.rollback()
            raise HTTPException(status_code=409, detail="Practitioner profile already exists")
        await self.session.refresh(practitioner)
        return practitioner

    async def create_practitioner(self, data: PractitionerCreate, user: User) -> Practitioner:
        owner_id = data.user or user.id
        permissions.check_practitioner_create(user, owner_id)

        owner = await self.session.get(User, owner_id)
        if not owner or owner.role not in PRACTITIONER_ROLES:
            raise HTTPException(status_code=404, detail="Practitioner user not found")

        existing = await self.session.execute(select(Practitioner).where(Practitioner.user_id == owner_id))
        if existing.scalars().first():
            raise HTTPException(status_code=409, detail="Practitioner profile already exists")
        await self._ensure_license_free(data.professional_info.license_number)

        practitioner = Practitioner(
            user_id=owner_id,
            specializations=list(data.specializations),
            license_number=data.professional_info.license_number,
            university=data.professional_info.university,
            graduation_year=data.professional_info.graduation_year,
            price_consultation=Decimal(str(data.practice.prices.consultation)),
        )
        self._apply_professional_info(practitioner, data.professional_info)
        self._apply_practice(practitioner, data.practice)
        # Only admins verify practitioners
        if data.verification and permissions.is_admin(user):
            self._apply_verification(practitioner, data.verification)

        practitioner = await self._commit(practitioner)
        logger.info(f"Practitioner profile {practitioner.id} created for user {owner_id}")
        return practitioner

    async def update_practitioner(self, practitioner_id: UUID, data: PractitionerUpdate, user: User) -> Practitioner:
        practitioner = await self.get_practitioner(practitioner_id)
        permissions.check_practitioner_write(user, practitioner)

        if data.professional_info is not None:
            if data.professional_info.license_number != practitioner.license_number:
                await self._ensure_license_free(data.professional_info.license_number, practitioner.id)
            self._apply_professional_info(practitioner, data.professional_info)
        if data.specializations is not None:
            practitioner.specializations = list(data.specializations)
        if data.practice is not None:
            self._apply_practice(practitioner, data.practice)
        if data.is_active is not None:
            practitioner.is_active = data.is_active

        if permissions.is_admin(user):
            if data.verification is not None:
                self._apply_verification(practitioner, data.verification)
            if data.statistics is not None:
                practitioner.total_appointments = data.statistics.total_appointments
                practitioner.total_patients = data.statistics.total_patients
                practitioner.average_rating = data.statistics.average_rating
                practitioner.total_reviews = data.statistics.total_reviews

        practitioner.updated_at = datetime.utcnow()
        return await self._commit(practitioner)

    @staticmethod
    def total_pages(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit else 0

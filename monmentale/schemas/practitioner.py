from pydantic import Field, field_validator
from uuid import UUID
from datetime import datetime
from typing import Optional, List, Dict

from monmentale.core.utils import WEEKDAYS
from monmentale.schemas.appointment import TimeSlot
from monmentale.schemas.common import (
    CamelModel,
    Coordinates,
    AppointmentType,
    Specialization,
    Language,
)

class ProfessionalInfo(CamelModel):
    license_number: str = Field(min_length=1)
    university: str
    graduation_year: int
    experience: int = Field(ge=0)
    languages: List[Language] = []
    description: Optional[str] = Field(default=None, max_length=1000)
    approach: Optional[str] = Field(default=None, max_length=500)

class PracticeAddress(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "France"
    coordinates: Optional[Coordinates] = None

class Prices(CamelModel):
    consultation: float = Field(ge=0)
    teleconsultation: Optional[float] = Field(default=None, ge=0)
    domicile: Optional[float] = Field(default=None, ge=0)

class Practice(CamelModel):
    address: PracticeAddress = Field(default_factory=PracticeAddress)
    consultation_types: List[AppointmentType] = []
    prices: Prices
    availability: Dict[str, List[TimeSlot]] = {}
    consultation_duration: int = Field(default=45, ge=15, le=120)
    break_duration: int = Field(default=15, ge=5, le=60)

    @field_validator("availability")
    @classmethod
    def check_weekdays(cls, value: Dict[str, List[TimeSlot]]) -> Dict[str, List[TimeSlot]]:
        unknown = set(value) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
        return value

class VerificationDocument(CamelModel):
    type: Optional[str] = None
    url: Optional[str] = None
    status: str = "pending"
    uploaded_at: Optional[datetime] = None

class Verification(CamelModel):
    is_verified: bool = False
    documents: List[VerificationDocument] = []
    verified_at: Optional[datetime] = None

class Statistics(CamelModel):
    total_appointments: int = 0
    total_patients: int = 0
    average_rating: float = Field(default=0, ge=0, le=5)
    total_reviews: int = 0

class PractitionerCreate(CamelModel):
    user: Optional[UUID] = None
    specializations: List[Specialization] = []
    professional_info: ProfessionalInfo
    practice: Practice
    verification: Optional[Verification] = None

class PractitionerUpdate(CamelModel):
    specializations: Optional[List[Specialization]] = None
    professional_info: Optional[ProfessionalInfo] = None
    practice: Optional[Practice] = None
    verification: Optional[Verification] = None
    statistics: Optional[Statistics] = None
    is_active: Optional[bool] = None

class PractitionerResponse(CamelModel):
    id: UUID = Field(alias="_id")
    user: UUID
    specializations: List[str]
    professional_info: ProfessionalInfo
    practice: Practice
    verification: Verification
    statistics: Statistics
    is_active: bool
    created_at: datetime
    updated_at: datetime
    distance: Optional[float] = None

class PractitionerEnvelope(CamelModel):
    message: str
    practitioner: PractitionerResponse

class PractitionerPage(CamelModel):
    practitioners: List[PractitionerResponse]
    total_pages: int
    current_page: int
    total: int

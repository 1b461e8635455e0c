from pydantic import Field
from uuid import UUID
from datetime import date, datetime
from typing import Optional

from monmentale.schemas.common import CamelModel, Gender

class Profile(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    avatar: Optional[str] = None

class PatientUpdate(CamelModel):
    profile: Optional[Profile] = None

class PatientResponse(CamelModel):
    id: UUID
    email: str
    profile: Profile
    is_verified: bool
    created_at: datetime

class PatientSummary(CamelModel):
    id: UUID
    email: str
    profile: Profile

class PatientEnvelope(CamelModel):
    message: str
    user: PatientSummary

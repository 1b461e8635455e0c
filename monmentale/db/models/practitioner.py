from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

class Practitioner(SQLModel, table=True):
    __tablename__ = "practitioners"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", unique=True, index=True)
    specializations: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    license_number: str = Field(unique=True, index=True)
    university: str
    graduation_year: int
    experience: int = Field(default=0)
    languages: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    description: Optional[str] = None
    approach: Optional[str] = None

    street: Optional[str] = None
    city: Optional[str] = Field(default=None, index=True)
    postal_code: Optional[str] = None
    country: str = Field(default="France")
    latitude: Optional[float] = Field(default=None, index=True)
    longitude: Optional[float] = Field(default=None, index=True)
    consultation_types: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    price_consultation: Decimal = Field(max_digits=10, decimal_places=2)
    price_teleconsultation: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    price_domicile: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    # {"monday": [{"start": "09:00", "end": "12:00"}], ...}
    availability: dict = Field(default_factory=dict, sa_column=Column(JSON))
    consultation_duration: int = Field(default=45)
    break_duration: int = Field(default=15)

    is_verified: bool = Field(default=False)
    verification_documents: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    verified_at: Optional[datetime] = None

    total_appointments: int = Field(default=0)
    total_patients: int = Field(default=0)
    average_rating: float = Field(default=0)
    total_reviews: int = Field(default=0)

    stripe_account_id: Optional[str] = Field(default=None, index=True)
    charges_enabled: bool = Field(default=False)
    payouts_enabled: bool = Field(default=False)

    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4

PATIENT = "patient"
ADMIN = "admin"
PRACTITIONER_ROLES = ("psychologue", "psychiatre")

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: Optional[str] = None
    role: str = Field(default=PATIENT) # patient, psychologue, psychiatre, admin
    # firstName, lastName, phone, dateOfBirth, gender, avatar
    profile: dict = Field(default_factory=dict, sa_column=Column(JSON))
    is_verified: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

from monmentale.schemas.patient import Profile

class UserResponse(BaseModel):
    id: UUID
    email: str
    role: str
    profile: Profile
    is_verified: bool
    created_at: datetime

    class Config:
        from_attributes = True

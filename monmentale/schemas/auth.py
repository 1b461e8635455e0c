from pydantic import BaseModel, Field
from typing import Literal

from monmentale.schemas.patient import Profile
from monmentale.schemas.user import UserResponse

class RegisterRequest(BaseModel):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8)
    # Admin accounts are provisioned out of band
    role: Literal["patient", "psychologue", "psychiatre"] = "patient"
    profile: Profile = Field(default_factory=Profile)

class LoginRequest(BaseModel):
    email: str
    password: str

class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse

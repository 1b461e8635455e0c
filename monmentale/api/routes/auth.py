from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from monmentale.api.deps import get_current_user, get_redis_client, oauth2_scheme
from monmentale.core.redis import RedisClient
from monmentale.db.models import User
from monmentale.db.session import get_session
from monmentale.schemas.auth import LoginRequest, LoginResponse, RegisterRequest
from monmentale.schemas.common import Message
from monmentale.schemas.user import UserResponse
from monmentale.services.auth_service import AuthService

router = APIRouter()

async def get_auth_service(
    session: AsyncSession = Depends(get_session),
    redis_client: RedisClient = Depends(get_redis_client),
) -> AuthService:
    return AuthService(session, redis_client)

@router.post("/register", response_model=LoginResponse, status_code=201)
async def register(
    data: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    return await service.register(data)

@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    return await service.login(login_data)

@router.get("/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)

@router.post("/logout", response_model=Message)
async def logout(
    token: str = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    await service.logout(token)
    return Message(message="Logged out successfully")

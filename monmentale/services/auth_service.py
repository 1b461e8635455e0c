import json
from datetime import timedelta
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from monmentale.core.config import settings
from monmentale.core.logger import logger
from monmentale.core.redis import RedisClient
from monmentale.core.security import verify_password, get_password_hash, create_access_token
from monmentale.db.models import User
from monmentale.schemas.auth import RegisterRequest, LoginRequest, LoginResponse
from monmentale.schemas.user import UserResponse

class AuthService:
    def __init__(self, session: AsyncSession, redis_client: RedisClient):
        self.session = session
        self.redis_client = redis_client

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def register(self, data: RegisterRequest) -> LoginResponse:
        if await self.get_user_by_email(data.email):
            raise HTTPException(status_code=409, detail="Email already registered")

        user = User(
            email=data.email.lower(),
            password_hash=get_password_hash(data.password),
            role=data.role,
            profile=data.profile.model_dump(by_alias=True, exclude_none=True, mode="json"),
        )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"User {user.id} registered as {user.role}")
        return await self.issue_token(user)

    async def login(self, login_data: LoginRequest) -> LoginResponse:
        user = await self.get_user_by_email(login_data.email)
        if not user or not verify_password(login_data.password, user.password_hash):
            raise HTTPException(status_code=401, detail="Invalid email or password")
        if not user.is_active:
            raise HTTPException(status_code=403, detail="Account disabled")

        return await self.issue_token(user)

    async def issue_token(self, user: User) -> LoginResponse:
        access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        access_token = create_access_token(
            data={"sub": str(user.id), "role": user.role}, expires_delta=access_token_expires
        )

        token_data = {
            "user_id": str(user.id),
            "role": user.role,
        }
        await self.redis_client.set_token(
            access_token,
            json.dumps(token_data),
            settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        )

        return LoginResponse(
            access_token=access_token,
            token_type="bearer",
            user=UserResponse.model_validate(user),
        )

    async def logout(self, token: str):
        await self.redis_client.delete_token(token)

import time
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import PyJWTError
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from monmentale.core.config import settings
from monmentale.core.logger import logger
from monmentale.core.redis import RedisClient
from monmentale.core.security import decode_access_token
from monmentale.db.models import User
from monmentale.db.session import get_session
from monmentale.services.stripe_service import StripeService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_STR}/auth/login")

def get_redis_client(request: Request) -> RedisClient:
    return request.app.state.redis_client

def get_stripe_service(request: Request) -> StripeService:
    return request.app.state.stripe_service

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
    redis_client: RedisClient = Depends(get_redis_client),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        user_id = UUID(payload.get("sub"))
    except (PyJWTError, TypeError, ValueError):
        raise credentials_exception

    # Tokens are revoked by removing them from the store on logout
    if not await redis_client.get_token(token):
        raise credentials_exception

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise credentials_exception
    return user

async def rate_limit(request: Request, redis_client: RedisClient = Depends(get_redis_client)):
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    client = request.client.host if request.client else "unknown"
    bucket = int(time.time() // window)
    try:
        count = await redis_client.hit(f"{client}:{bucket}", window)
    except RedisError as e:
        # Fail open: an unreachable redis must not take the API down
        logger.warning(f"Rate limiter unavailable: {e}")
        return
    if count > settings.RATE_LIMIT_REQUESTS:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later",
        )

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from monmentale.api.api import api_router
from monmentale.api.deps import get_redis_client
from monmentale.core.config import settings
from monmentale.core.logger import logger
from monmentale.core.redis import RedisClient
from monmentale.db.session import get_session, init_db
from monmentale.middleware.log_middleware import LogMiddleware
from monmentale.services.stripe_service import StripeService

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await init_db()
    app.state.redis_client = RedisClient(settings.REDIS_URL)
    app.state.stripe_service = StripeService(
        settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        timeout=settings.STRIPE_TIMEOUT_SECONDS,
        frontend_url=settings.FRONTEND_URL,
    )
    logger.info(f"{settings.PROJECT_NAME} API started")
    yield
    await app.state.redis_client.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_STR}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LogMiddleware)

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

@app.get("/")
async def root():
    return {"message": "Welcome to Mon Mentale API"}

@app.get(f"{settings.API_STR}/test")
async def api_test():
    return {"message": "Mon Mentale API is running"}

@app.get(f"{settings.API_STR}/health")
async def health(
    session: AsyncSession = Depends(get_session),
    redis_client: RedisClient = Depends(get_redis_client),
):
    checks = {}
    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unavailable"
    try:
        await redis_client.ping()
        checks["redis"] = "ok"
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        checks["redis"] = "unavailable"

    healthy = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", **checks},
    )

app.include_router(api_router, prefix=settings.API_STR)

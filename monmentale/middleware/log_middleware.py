import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from monmentale.core.logger import logger

class LogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        client = request.client.host if request.client else "-"
        logger.info(
            f"{request.method} {request.url.path} | "
            f"Client: {client} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s"
        )
        return response

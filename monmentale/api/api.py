from fastapi import APIRouter, Depends

from monmentale.api.deps import rate_limit
from monmentale.api.routes import (
    appointments,
    auth,
    documents,
    messages,
    notifications,
    patients,
    payments,
    practitioners,
    reviews,
)

api_router = APIRouter(dependencies=[Depends(rate_limit)])

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(practitioners.router, prefix="/practitioners", tags=["practitioners"])
api_router.include_router(patients.router, prefix="/patients", tags=["patients"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(documents.router, prefix="/documents", tags=["documents"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])

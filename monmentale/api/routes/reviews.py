from fastapi import APIRouter, Depends

from monmentale.api.deps import get_current_user
from monmentale.schemas.common import Message

router = APIRouter()

@router.get("/", response_model=Message)
async def read_reviews():
    return Message(message="Reviews route - not implemented yet")

@router.post("/", response_model=Message, dependencies=[Depends(get_current_user)])
async def create_review():
    return Message(message="Creating reviews - not implemented yet")

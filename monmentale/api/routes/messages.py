from fastapi import APIRouter, Depends

from monmentale.api.deps import get_current_user
from monmentale.schemas.common import Message

router = APIRouter(dependencies=[Depends(get_current_user)])

@router.get("/", response_model=Message)
async def read_messages():
    return Message(message="Messages route - not implemented yet")

@router.post("/", response_model=Message)
async def send_message():
    return Message(message="Sending messages - not implemented yet")

from fastapi import APIRouter, Depends

from monmentale.api.deps import get_current_user
from monmentale.schemas.common import Message

router = APIRouter(dependencies=[Depends(get_current_user)])

@router.get("/", response_model=Message)
async def read_notifications():
    return Message(message="Notifications route - not implemented yet")

@router.put("/{notification_id}/read", response_model=Message)
async def mark_notification_read(notification_id: str):
    return Message(message="Marking notifications as read - not implemented yet")

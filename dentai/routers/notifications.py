from fastapi import APIRouter, Depends

from dentai.dependencies import get_current_user, get_inbox
from dentai.schemas.user import CurrentUser
from dentai.services.notifications import NotificationInbox
from dentai.utils.response import success_response

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    user: CurrentUser = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    notifications = await inbox.list_for_user(user.id, unread_only=unread_only)
    return success_response(data={
        "notifications": notifications,
        "unread_count": await inbox.unread_count(user.id),
    })


@router.post("/read-all")
async def mark_all_read(
    user: CurrentUser = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    updated = await inbox.mark_all_read(user.id)
    return success_response(data={"updated": updated})


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    return success_response(data=await inbox.mark_read(notification_id, user_id=user.id))

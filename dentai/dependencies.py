from fastapi import Header, HTTPException, Request

from dentai.config import settings
from dentai.schemas.user import CurrentUser, UserRole
from dentai.services.notifications import NotificationInbox
from dentai.services.pipeline import ImagePipeline
from dentai.services.users import resolve_user
from dentai.services.workflow import ReviewWorkflow
from dentai.store import RecordStore
from dentai.utils.exceptions import AppException


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_workflow(request: Request) -> ReviewWorkflow:
    return request.app.state.workflow


def get_pipeline(request: Request) -> ImagePipeline:
    return request.app.state.pipeline


def get_inbox(request: Request) -> NotificationInbox:
    return request.app.state.inbox


async def get_current_user(request: Request, x_user_id: str = Header(default="")) -> CurrentUser:
    return await resolve_user(request.app.state.store, x_user_id)


async def get_current_doctor(request: Request, x_user_id: str = Header(default="")) -> CurrentUser:
    user = await resolve_user(request.app.state.store, x_user_id)
    if user.role != UserRole.DOCTOR:
        raise AppException("Only doctors can review analyses", status_code=403)
    return user

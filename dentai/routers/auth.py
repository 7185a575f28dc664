from fastapi import APIRouter, Depends

from dentai.dependencies import get_current_user, get_store
from dentai.schemas.auth import LoginRequest, LoginResponse, ProfileUpdate, RegisterRequest
from dentai.schemas.user import CurrentUser
from dentai.services.users import authenticate, register, update_profile
from dentai.store import RecordStore
from dentai.utils.response import success_response

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(request: LoginRequest, store: RecordStore = Depends(get_store)):
    user = await authenticate(store, request.email, request.password)
    return success_response(
        data=LoginResponse(user_id=user.id, name=user.name, role=user.role)
    )


@router.post("/register", status_code=201)
async def register_patient(request: RegisterRequest, store: RecordStore = Depends(get_store)):
    user = await register(store, request.name, request.email, request.password)
    return success_response(
        data=LoginResponse(user_id=user.id, name=user.name, role=user.role)
    )


@router.patch("/profile")
async def edit_profile(
    request: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: RecordStore = Depends(get_store),
):
    updated = await update_profile(store, user.id, name=request.name, email=request.email)
    return success_response(
        data=LoginResponse(user_id=updated.id, name=updated.name, role=updated.role)
    )

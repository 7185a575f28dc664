import logging
import os
import uuid as uuid_mod

from fastapi import APIRouter, Depends, File, UploadFile

from dentai.config import settings
from dentai.dependencies import get_current_user, get_pipeline, get_workflow
from dentai.schemas.user import CurrentUser, UserRole
from dentai.services.pipeline import ImagePipeline
from dentai.services.quality_gate import check_payload
from dentai.services.workflow import ReviewWorkflow
from dentai.utils.exceptions import NotFoundError
from dentai.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


def _image_dir() -> str:
    return os.path.join(settings.data_dir, "images")


async def _owned_image(workflow: ReviewWorkflow, image_id: str, user: CurrentUser):
    image = await workflow.get_image(image_id)
    if image.user_id != user.id and user.role != UserRole.DOCTOR:
        raise NotFoundError("Image", image_id)
    return image


@router.post("", status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
    pipeline: ImagePipeline = Depends(get_pipeline),
):
    content = check_payload(await file.read())

    image_id = str(uuid_mod.uuid4())
    os.makedirs(_image_dir(), exist_ok=True)
    file_path = os.path.join(_image_dir(), f"{image_id}.jpg")
    with open(file_path, "wb") as f:
        f.write(content)

    image = await workflow.create_image(
        user,
        payload_ref=file_path,
        file_name=file.filename or f"{image_id}.jpg",
        file_size=len(content),
        image_id=image_id,
    )

    # Quality gate + detection run in the background
    pipeline.schedule(image_id, content)

    return success_response(data=image)


@router.get("")
async def list_images(
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    return success_response(data=await workflow.list_user_images(user.id))


@router.get("/{image_id}")
async def get_image(
    image_id: str,
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    return success_response(data=await _owned_image(workflow, image_id, user))


@router.delete("/{image_id}")
async def delete_image(
    image_id: str,
    user: CurrentUser = Depends(get_current_user),
    workflow: ReviewWorkflow = Depends(get_workflow),
):
    payload_ref = None
    try:
        payload_ref = (await _owned_image(workflow, image_id, user)).payload_ref
    except NotFoundError:
        pass  # already gone; deleting stays idempotent

    result = await workflow.delete_image(image_id) if payload_ref else None
    if payload_ref and os.path.exists(payload_ref):
        os.remove(payload_ref)

    return success_response(data={
        "image_id": image_id,
        "deleted": bool(result and result.deleted),
        "analysis_ids": result.analysis_ids if result else [],
    })

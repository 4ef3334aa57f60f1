import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db_session
from ..core.dependencies import get_face_image_uploader
from ..models.database import ObservedUser, User
from ..schemas import UploadImageRequest, UploadImageResponse
from ..services.side_channels import FaceImageUploader

router = APIRouter(prefix="/v1", tags=["File Management"])
logger = logging.getLogger(__name__)


@router.post("/upload-face-image", response_model=UploadImageResponse)
async def upload_face_image(
    request: UploadImageRequest,
    uploader: FaceImageUploader = Depends(get_face_image_uploader),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Store a base64 face image as <userId>.jpeg and record its public URL"""
    model = ObservedUser if request.isObservedUser else User
    owner = await db_session.get(model, request.userId)
    if owner is None:
        kind = "Observed user" if request.isObservedUser else "User"
        return JSONResponse({"error": f"{kind} {request.userId} not found."}, status_code=404)

    upload = await uploader.upload(request.userId, request.imageData, request.isObservedUser)
    if not upload.ok:
        logger.error(upload.warning)
        status_code = 400 if upload.warning.startswith("Failed to decode") else 500
        return JSONResponse({"error": upload.warning}, status_code=status_code)

    if request.isObservedUser:
        owner.face_image_url = upload.value
    else:
        owner.profile_picture_url = upload.value
    await db_session.commit()

    return UploadImageResponse(message="Image uploaded successfully", imageUrl=upload.value)

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db_session
from ..core.exceptions import ConflictError, InvalidEmbeddingError, NotFoundError
from ..schemas import (
    FaceUpdate,
    ItemWithNameAndId,
    MessageResponse,
    UserDetails,
    UserRegister,
    UserRegisterResponse,
)
from ..services.user_service import user_service

router = APIRouter(prefix="/v1", tags=["User Management"])
logger = logging.getLogger(__name__)


@router.post("/users", response_model=UserRegisterResponse)
async def register_user(
    payload: UserRegister,
    db_session: AsyncSession = Depends(get_db_session),
):
    try:
        user = await user_service.register_user(db_session, payload)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (InvalidEmbeddingError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return UserRegisterResponse(message="User registered successfully!", userId=user.id)


@router.get("/users/{user_id}", response_model=UserDetails)
async def get_user_details(
    user_id: str,
    db_session: AsyncSession = Depends(get_db_session),
):
    try:
        user = await user_service.get_user(db_session, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return UserDetails(
        id=user.id,
        full_name=user.full_name,
        email=user.email,
        role_details=ItemWithNameAndId.model_validate(user.role) if user.role else None,
        status_details=ItemWithNameAndId.model_validate(user.status) if user.status else None,
        zones_accessed_details=[ItemWithNameAndId.model_validate(zone) for zone in user.access_zones],
        alert_triggered=user.alert_triggered,
        consecutive_denied_accesses=user.consecutive_denied_accesses,
        profile_picture_url=user.profile_picture_url,
        has_face=await user_service.has_face(db_session, user.id),
        created_at=user.created_at,
    )


@router.put("/users/{user_id}/face", response_model=MessageResponse)
async def replace_user_face(
    user_id: str,
    payload: FaceUpdate,
    db_session: AsyncSession = Depends(get_db_session),
):
    """Re-enrol a user; the stored face is replaced, never duplicated"""
    try:
        await user_service.replace_face(db_session, user_id, payload.faceEmbedding)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidEmbeddingError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return MessageResponse(message=f"Face updated for user {user_id}.")


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    db_session: AsyncSession = Depends(get_db_session),
):
    try:
        await user_service.delete_user(db_session, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return MessageResponse(message=f"User {user_id} deleted.")

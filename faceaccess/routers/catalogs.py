from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db_session
from ..models.database import Role, UserStatus, Zone
from ..schemas import ItemWithNameAndId
from ..services.user_service import user_service

router = APIRouter(prefix="/v1", tags=["Catalogs"])


@router.get("/zones", response_model=List[ItemWithNameAndId])
async def list_zones(db_session: AsyncSession = Depends(get_db_session)):
    return await user_service.list_catalog(db_session, Zone)


@router.get("/user-statuses", response_model=List[ItemWithNameAndId])
async def list_user_statuses(db_session: AsyncSession = Depends(get_db_session)):
    return await user_service.list_catalog(db_session, UserStatus)


@router.get("/user-roles", response_model=List[ItemWithNameAndId])
async def list_user_roles(db_session: AsyncSession = Depends(get_db_session)):
    return await user_service.list_catalog(db_session, Role)

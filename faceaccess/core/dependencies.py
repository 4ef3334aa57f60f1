from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.side_channels import FaceImageUploader
from ..services.status_catalog import StatusCatalog, load_status_catalog
from ..services.validation_service import FaceValidationService
from .database import db

logger = logging.getLogger(__name__)


def get_cached_status_catalog(request: Request) -> Optional[StatusCatalog]:
    """Catalog loaded at startup, or None when it still has to be loaded"""
    return getattr(request.app.state, "status_catalog", None)


async def require_status_catalog(request: Request, db_session: AsyncSession) -> StatusCatalog:
    """Return the cached catalog, loading and caching it on first use.

    Raises StatusCatalogError when an essential status is missing.
    """
    catalog = get_cached_status_catalog(request)
    if catalog is None:
        catalog = await load_status_catalog(db_session)
        request.app.state.status_catalog = catalog
        logger.info("Status catalog loaded on first request")
    return catalog


def get_validation_service() -> FaceValidationService:
    """FastAPI dependency for the validation pipeline"""
    return FaceValidationService(db.session_maker)


def get_face_image_uploader() -> FaceImageUploader:
    return FaceImageUploader()

from datetime import datetime, timezone

from fastapi import APIRouter

from ..core.config import settings

router = APIRouter(prefix="/v1", tags=["Health & Monitoring"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "env": settings.env,
        "timestamp": datetime.now(timezone.utc),
    }

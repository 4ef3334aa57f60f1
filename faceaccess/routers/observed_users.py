import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db_session
from ..core.dependencies import require_status_catalog
from ..core.exceptions import ActionNotImplementedError, NotFoundError, StatusCatalogError
from ..schemas import ObservedUserAction, ObservedUsersPage
from ..services.observed_lifecycle import observed_user_service

router = APIRouter(prefix="/v1", tags=["Observed Users"])
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.get("/observed-users", response_model=ObservedUsersPage)
async def list_observed_users(
    request: Request,
    page: int = Query(1, ge=1),
    pageSize: int = Query(10, ge=1, le=100),
    searchTerm: str = Query(""),
    filterType: str = Query(""),
    db_session: AsyncSession = Depends(get_db_session),
):
    try:
        catalog = await require_status_catalog(request, db_session)
    except StatusCatalogError as e:
        logger.error(f"Cannot list observed users: {e}")
        return _error(500, str(e))

    return await observed_user_service.list_observed_users(
        db_session,
        catalog,
        page=page,
        page_size=pageSize,
        search_term=searchTerm.strip(),
        filter_type=filterType.strip(),
    )


@router.post("/observed-users/actions")
async def manage_observed_user_action(
    action: ObservedUserAction,
    request: Request,
    db_session: AsyncSession = Depends(get_db_session),
):
    """Administrative action on an observed user: block, extend or register"""
    if not action.observedUserId or not action.actionType:
        return _error(400, "Missing observedUserId or actionType in request body.")

    try:
        catalog = await require_status_catalog(request, db_session)
        message = await observed_user_service.perform_action(
            db_session, action.observedUserId, action.actionType, catalog
        )
    except ActionNotImplementedError as e:
        return _error(501, str(e))
    except NotFoundError as e:
        return _error(404, str(e))
    except ValueError as e:
        return _error(400, str(e))
    except Exception as e:
        logger.error(f"Action '{action.actionType}' failed for observed user {action.observedUserId}: {e}")
        await db_session.rollback()
        return _error(500, f"Failed to perform action: {e}")

    return {"message": message}

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..core.dependencies import get_cached_status_catalog, get_validation_service
from ..services.validation_service import FaceValidationService

router = APIRouter(prefix="/v1", tags=["Face Validation"])
logger = logging.getLogger(__name__)


@router.post("/validate-user-face")
async def validate_user_face(
    request: Request,
    service: FaceValidationService = Depends(get_validation_service),
):
    """Validate a captured face embedding against registered and observed users.

    The raw body is handed to the pipeline so malformed requests are answered
    with a client_error response and still leave an audit entry.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Unparseable validation request body: {e}")
        payload = None

    cached = get_cached_status_catalog(request)
    outcome = await service.validate(payload, cached)
    if cached is None and outcome.catalog is not None:
        request.app.state.status_catalog = outcome.catalog
        logger.info("Status catalog loaded on first request")
    return JSONResponse(outcome.response.to_json(), status_code=outcome.status_code)

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import db
from .core.exceptions import StatusCatalogError
from .core.middleware import correlation_id_middleware
from .core.minio_client import minio_client
from .routers import catalogs, files, health, observed_users, users, validation
from .services.status_catalog import load_status_catalog


# Application lifespan management
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        await minio_client.setup_buckets()
        logging.info("Connected to MinIO")
    except Exception as e:
        logging.warning(f"Failed to connect to MinIO: {e}")

    app.state.status_catalog = None
    try:
        async with db.get_session() as session:
            app.state.status_catalog = await load_status_catalog(session)
        logging.info("Status catalog loaded")
    except StatusCatalogError as e:
        logging.error(f"Status catalog incomplete, retrying on first request: {e}")
    except Exception as e:
        logging.error(f"Failed to load status catalog, retrying on first request: {e}")

    logging.info("API startup completed")

    yield

    # Shutdown
    logging.info("Starting graceful shutdown...")
    await db.close()
    logging.info("Shutdown completed")


app = FastAPI(
    title="Face Access Control API",
    version="0.1.0",
    openapi_url="/v1/openapi.json",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(correlation_id_middleware)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    # Admin endpoints answer malformed bodies with 400 {error}
    errors = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse({"error": f"Invalid request: {errors}"}, status_code=400)


# Include routers
app.include_router(health.router)
app.include_router(validation.router)
app.include_router(observed_users.router)
app.include_router(users.router)
app.include_router(catalogs.router)
app.include_router(files.router)


# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)

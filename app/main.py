import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from database.connection import init_db
from app.api import api_router
from app.core.errors import PassSyncError
from app.services.apns import get_apns_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    if get_apns_client() is None:
        logger.warning("APNs not configured. Passes will update when customers open Wallet.")
    yield
    # Shutdown


async def pass_sync_error_handler(request: Request, exc: PassSyncError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Vigo Coffee Wallet Passes",
        description="Apple Wallet loyalty and gift card API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(PassSyncError, pass_sync_error_handler)

    # Include all routes
    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
FastAPI app

- CORS configured for the web client
- Routers for requests, donors and chatbot
- Domain errors translated to JSON error responses
- Basic health check
"""
import logging
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file early, before config is read
project_root = Path(__file__).parent.parent
load_dotenv(dotenv_path=project_root / '.env')

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bloodlink.api import router
from bloodlink.api.middleware import TimingMiddleware
from bloodlink.core.config import CORS_ORIGINS, LOG_LEVEL
from bloodlink.services.errors import BloodLinkError, StorageError

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="BloodLink")

# Logs request duration and caller identity for all requests
app.add_middleware(TimingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],  # Including X-User-ID
)

app.include_router(router, prefix="/api/v1")


@app.exception_handler(BloodLinkError)
async def handle_domain_error(request: Request, exc: BloodLinkError):
    """
    Every rejected operation gets a distinguishable error code
    """
    logger.info("[API] %s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    content = {"error": exc.code, "detail": exc.message}
    fields = getattr(exc, "fields", None)
    if fields:
        content["fields"] = fields
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StorageError)
async def handle_storage_error(request: Request, exc: StorageError):
    logger.error("[API] storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "detail": "Storage is temporarily unavailable. Please retry."},
    )


@app.get("/")
async def root():
    """
    Basic health check
    """
    return {"status": "ok"}

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pathlib import Path
from dotenv import load_dotenv
import datetime as dt
import logging
import time

# Load environment variables
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

from app.config import get_settings
from app.errors import install_error_handlers
from app.logging_config import setup_logging
from app.routers import edit, enhance, generate, refine, session

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

# Create FastAPI app
app = FastAPI(title="Nano Banana Studio API", version="1.0.0")

# Configure CORS - MUST be before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_error_handlers(app, expose_details=settings.expose_error_details)

# Uploaded images must be publicly reachable so the provider can fetch them
upload_dir = Path(settings.upload_dir)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(upload_dir)), name="uploads")

# Include routers
app.include_router(session.router)
app.include_router(generate.router)
app.include_router(edit.router)
app.include_router(refine.router)
app.include_router(enhance.router)

logger.info(
    "Nano Banana Studio API ready (env=%s, provider=%s, uploads=%s)",
    settings.app_env, settings.provider_base_url, upload_dir,
)


@app.get("/")
def root():
    return {"message": "Nano Banana Studio API", "version": "1.0.0"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z"),
        "environment": settings.app_env,
        "uptime": round(time.monotonic() - STARTED_AT, 3),
    }

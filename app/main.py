import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_google_calendar,  # noqa: F401
)
from .database import Base, engine
from .routes.calendar import router as calendar_router
from .routes.calendar_webhooks import router as calendar_webhooks_router
from .routes.google_calendar import router as google_calendar_router
from .routes.notifications import router as notifications_router
from .routes.schedule_items import router as schedule_items_router
from .services.calendar_config import get_calendar_config, validate_configuration

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("google.auth").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    calendar_config = get_calendar_config()
    valid, errors = validate_configuration(calendar_config)
    if valid:
        logger.info("✅ Calendar configuration resolved")
    else:
        for error in errors:
            logger.warning(f"⚠️ Calendar configuration: {error}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Construction Scheduling API", version="1.0.0", lifespan=lifespan)

# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(calendar_router)
app.include_router(schedule_items_router)
app.include_router(google_calendar_router)
app.include_router(notifications_router)
app.include_router(calendar_webhooks_router)


@app.get("/")
def root():
    return {"message": "Construction Scheduling API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}

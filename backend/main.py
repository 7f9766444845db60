import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from api.routes import analyze
from schemas.api import HealthResponse

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Sensitive Analysis API")

    # Safety checks
    key_setting = f"{settings.default_provider}_api_key"
    if hasattr(settings, key_setting) and not getattr(settings, key_setting):
        logger.warning(
            "%s is not set! Analysis requests will be rejected until the "
            "%s provider is configured.",
            key_setting.upper(),
            settings.default_provider,
        )

    yield
    logger.info("Shutting down Sensitive Analysis API")


app = FastAPI(
    title="Sensitive Analysis",
    description="Policy-driven detection of sensitive data in text, CSV, JSON and spreadsheets",
    version="0.1.0",
    lifespan=lifespan,
)

cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With"],
)

app.include_router(analyze.router, prefix="/api", tags=["analysis"])


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())

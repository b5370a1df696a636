"""
Receipt intake gateway — FastAPI application entry‑point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.receipts.database import Base, engine
from app.receipts.workflow import get_registry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import app.receipts.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)
    logger.info("Receipts API: %s, polling every %.1fs", settings.RECEIPTS_API_BASE_URL, settings.POLL_INTERVAL_SECONDS)

    yield

    # No poller may outlive the event loop
    await get_registry().shutdown()
    logger.info("Shutting down")


app = FastAPI(
    title="Receipt Intake",
    description="Receipt upload → OCR job polling → review → reimbursement records",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"service": "Receipt Intake", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from app.receipts.routers.batches import router as batches_router  # noqa: E402
from app.receipts.routers.receipts import router as receipts_router  # noqa: E402

app.include_router(batches_router, prefix="/api", tags=["Receipt Batches"])
app.include_router(receipts_router, prefix="/api", tags=["Saved Receipts"])

"""
SplitSmart Backend — FastAPI application entry‑point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from splitsmart.cache import InMemoryCache
from splitsmart.config import settings
from splitsmart.database import Base, engine
from splitsmart.errors import SplitSmartError

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import splitsmart.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)

    # Per-process claim history used for local suggestions
    if getattr(app.state, "memory", None) is None:
        app.state.memory = InMemoryCache()

    yield
    logger.info("Shutting down")


app = FastAPI(
    title="SplitSmart",
    description="Receipt image → itemized ledger → claims → fair shares",
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


@app.exception_handler(SplitSmartError)
async def splitsmart_error_handler(request: Request, exc: SplitSmartError):
    if exc.status_code >= 500:
        logger.warning("%s %s → %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(exc.payload(), status_code=exc.status_code)


@app.get("/")
async def root():
    return {"service": "SplitSmart", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from splitsmart.routers.sessions import router as sessions_router  # noqa: E402
from splitsmart.routers.claims import router as claims_router  # noqa: E402
from splitsmart.routers.suggestions import router as suggestions_router  # noqa: E402
from splitsmart.routers.receipts import router as receipts_router  # noqa: E402
from splitsmart.routers.payments import router as payments_router  # noqa: E402
from splitsmart.routers.events import router as events_router  # noqa: E402

app.include_router(sessions_router, prefix="/api", tags=["Sessions"])
app.include_router(claims_router, prefix="/api", tags=["Claims & Shares"])
app.include_router(suggestions_router, prefix="/api", tags=["Suggestions"])
app.include_router(receipts_router, prefix="/api", tags=["Receipt Parsing"])
app.include_router(payments_router, prefix="/api", tags=["Payments"])
app.include_router(events_router, prefix="/api", tags=["Realtime"])

"""
FastAPI entrypoint for Tripboard backend application.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tripboard.core.config import settings
from tripboard.core.exceptions import TripboardError
from tripboard.api.router import api_router
from tripboard.db.session import SessionLocal, init_db
from tripboard.models.trip import Trip
from tripboard.services.auto_lock_service import AutoLockMonitor
from tripboard.services.notifier import ChangeNotifier
from tripboard.services.voting_service import VOTING_PHASES

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, then start the auto-lock monitor for trips still voting."""
    init_db()

    notifier = ChangeNotifier()
    monitor = AutoLockMonitor(SessionLocal, notifier)
    app.state.notifier = notifier
    app.state.auto_lock_monitor = monitor

    db = SessionLocal()
    try:
        trip_ids = [trip_id for (trip_id,) in db.query(Trip.id).filter(Trip.phase.in_(VOTING_PHASES)).all()]
    finally:
        db.close()
    monitor.start(trip_ids)
    logger.info(f"Auto-lock monitor started for {len(trip_ids)} trips")

    yield

    monitor.stop()


app = FastAPI(
    title="Tripboard API",
    description="Backend API for group trip planning",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TripboardError)
async def tripboard_error_handler(request: Request, exc: TripboardError):
    """Map domain errors to JSON error responses."""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"message": "Tripboard API is running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}

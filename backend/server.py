from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from database import database
from routes import limits, notifications
import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# In-memory job store: the reminder job is a fixed interval with nothing to persist
scheduler = AsyncIOScheduler()

# Import job runners from shared module (used by scheduler and the HTTP trigger)
from job_runner import build_dispatcher, build_reminder_job, run_appointment_reminders
from services.limit_guard import ResourceLimitGuard
from services.scheduling_store import SchedulingStore


def _env_flag(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _reminder_interval_minutes() -> int:
    try:
        return max(1, int(os.getenv("REMINDER_INTERVAL_MINUTES", "15")))
    except ValueError:
        logger.warning("REMINDER_INTERVAL_MINUTES is not an integer; using 15")
        return 15


def _drain_timeout_seconds() -> float:
    try:
        return max(0.0, float(os.getenv("NOTIFICATION_DRAIN_TIMEOUT_SECONDS", "5")))
    except ValueError:
        logger.warning("NOTIFICATION_DRAIN_TIMEOUT_SECONDS is not a number; using 5")
        return 5.0


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Schedulizer notifications API")
    under_pytest = bool(os.getenv("PYTEST_RUNNING"))
    if not under_pytest:
        await database.connect()

    # Provider clients are built once here and injected; nothing reaches for a module-level client
    dispatcher = build_dispatcher()
    app.state.dispatcher = dispatcher
    app.state.reminder_job = build_reminder_job(dispatcher)
    app.state.limit_guard = ResourceLimitGuard(SchedulingStore())

    scheduler_started = False
    if not under_pytest and _env_flag("REMINDER_SCHEDULER_ENABLED", True):
        interval = _reminder_interval_minutes()
        scheduler.add_job(
            run_appointment_reminders,
            IntervalTrigger(minutes=interval),
            args=[app.state.reminder_job],
            id="appointment_reminders",
            name="Appointment Reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        scheduler.start()
        scheduler_started = True
        logger.info(f"Background job scheduler started (appointment reminders every {interval} min)")

    yield

    # Shutdown
    logger.info("Shutting down Schedulizer notifications API")
    if scheduler_started:
        scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")
    # In-flight sends still write audit entries, so they finish before the connection closes
    await dispatcher.drain(timeout=_drain_timeout_seconds())
    if not under_pytest:
        await database.close()

# Create FastAPI app
app = FastAPI(
    title="Schedulizer Notifications API",
    description="Plan-gated appointment notifications, reminders and resource limits",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(notifications.router)
app.include_router(limits.router)

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": {"message": "Internal server error", "code": "INTERNAL_ERROR"}}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )

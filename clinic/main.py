import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from clinic import models  # noqa: F401 - registers every table on Base.metadata
from clinic.config import CLINIC_NAME, CORS_ORIGINS, SCHEDULER_ENABLED
from clinic.core.errors import ClinicError
from clinic.core.scheduler import start_scheduler, stop_scheduler
from clinic.database import SessionLocal, engine
from clinic.routers import (
    admin,
    appointments,
    auth,
    availability,
    doctors,
    notifications,
    patients,
    payments,
    services,
    slots,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
for noisy in ("httpx", "httpcore", "apscheduler"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(title=f"{CLINIC_NAME} Appointment API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ORIGINS != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, **exc.extra})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Include routers; availability before doctors so /api/doctors/availability
# is not captured by /api/doctors/{doctor_id}
app.include_router(auth.router)
app.include_router(availability.router)
app.include_router(doctors.router)
app.include_router(slots.router)
app.include_router(services.router)
app.include_router(appointments.router)
app.include_router(patients.router)
app.include_router(payments.router)
app.include_router(notifications.router)
app.include_router(admin.router)


@app.on_event("startup")
async def startup_event():
    if SCHEDULER_ENABLED:
        start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    stop_scheduler()
    engine.dispose()
    logger.info("Database engine disposed")


@app.get("/")
async def root():
    return {"message": f"Welcome to {CLINIC_NAME} Appointment API"}


@app.get("/api/health")
async def health():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "unreachable"},
        )
    finally:
        db.close()
    return {"status": "healthy", "database": "ok"}

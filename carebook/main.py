from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carebook.config import get_settings
from carebook.core.logging import setup_logging
from carebook.database import create_tables
from carebook.exceptions import BookingEngineError
from carebook.limiter import limiter
from carebook.routers import appointments, directory, health, schedule, slots
from carebook.security import add_security_headers

settings = get_settings()
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_tables()
    logger.info("startup", app=settings.app_name, environment=settings.environment, timezone=settings.clinic_timezone)
    yield
    logger.info("shutdown", app=settings.app_name)


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(BookingEngineError)
async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    """Every engine error kind maps to its own status code and a stable error code."""
    log = logger.error if exc.http_status >= 500 else logger.info
    log("request.rejected", path=request.url.path, error=exc.code, detail=exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    return add_security_headers(response)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)

app.include_router(directory.router, prefix="/api/v1")
app.include_router(schedule.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("carebook.main:app", host="0.0.0.0", port=8000, reload=settings.is_development)

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.db import AsyncSessionLocal, Base, engine
from .core.responses import ErrorCodes, error_response
from .errors import BookingError
from .routes_bookings import router as bookings_router
from .routes_email import router as email_router
from .seed import seed_initial_data


settings = get_settings()
app = FastAPI(title="Luxe Hair Studio Booking Backend")
logger = logging.getLogger(__name__)

app.include_router(bookings_router)
app.include_router(email_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        name = ".".join(loc) or "body"
        if name not in fields:
            fields.append(name)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response(ErrorCodes.VALIDATION_ERROR, "Validation failed", {"fields": fields}),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    details = {"error": str(exc), "type": exc.__class__.__name__} if settings.is_development else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(ErrorCodes.INTERNAL_ERROR, "Internal Server Error", details),
    )


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.seed_on_startup:
        async with AsyncSessionLocal() as session:
            await seed_initial_data(session)


@app.get("/health")
async def healthcheck():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.availability import router as availability_router
from app.api.v1.bookings import router as bookings_router
from app.api.v1.calendar import router as calendar_router
from app.application.exceptions import ConfigurationError, StorageError
from app.core.config import settings


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("advisor_id", "booking_id", "event_id", "operation", "status", "reason", "error"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

app = FastAPI(title="Advisory Booking", version="1.0.0")

app.include_router(availability_router, prefix="/api/v1", tags=["availability"])
app.include_router(calendar_router, prefix="/api/v1", tags=["calendar"])
app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])


@app.exception_handler(ConfigurationError)
def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logging.getLogger(__name__).error("Configuration error", extra={"error": str(exc)})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(StorageError)
def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logging.getLogger(__name__).error("Storage error", extra={"error": str(exc)})
    return JSONResponse(status_code=503, content={"detail": "Storage temporarily unavailable"})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}

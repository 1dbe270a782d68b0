from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from payrecon import models
from payrecon.config import get_settings, validate_settings
from payrecon.database import engine
from payrecon.errors import PaymentError
from payrecon.logging_config import configure_logging, get_logger

settings = get_settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_settings(settings)
    models.Base.metadata.create_all(bind=engine)
    logger.info("app.started", version=settings.APP_VERSION)
    yield


app = FastAPI(
    title="PayToday Payment Reconciliation API",
    description="Settles each payment to exactly one outcome across webhook, redirect, poll and failure triggers",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request.failed",
        path=request.url.path,
        error=type(exc).__name__,
        detail=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "detail": exc.message, "retryable": exc.retryable},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("request.invalid", path=request.url.path, errors=str(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={"error": "ValidationError", "detail": str(exc.errors()), "retryable": False},
    )


@app.get("/health")
def health_check():
    return {"status": "ok", "service": settings.APP_NAME}


from payrecon.routers import payments  # noqa: E402
app.include_router(payments.router, prefix="/api/v1/payments", tags=["payments"])

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from tier_checkout.database import Base, engine
from tier_checkout.errors import PaymentError
from tier_checkout.logging_config import configure_logging
from tier_checkout.models import LedgerEntryRow, PaymentRecordRow  # noqa: F401  (registers tables)
from tier_checkout.routes import router

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Tier Checkout Payment Service")

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, detail=exc.message,
                     upstream=exc.payload)
    content = {"error": exc.code, "detail": exc.message}
    if exc.payload is not None:
        content["upstream"] = exc.payload
    return JSONResponse(status_code=exc.status_code, content=content)

# api/server.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - FASTAPI SERVER
# ============================================================================
# Webhook ingress, attribution capture and payment status polling
# ============================================================================

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
import uvicorn

from config import get_config
from logging_setup import configure_logging
from schemas.payments import StatusPollRequest, UtmCaptureRequest
from services import (
    PaymentServices,
    PaymentValidationError,
    get_services,
    shutdown_services,
)

VERSION = "1.0.0"

config = get_config()
configure_logging(config.log_level)
logger = logging.getLogger("Payments.Server")


# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info(f"Starting payments bridge v{VERSION} (data_dir={config.data_dir})")
    if not config.remote_status_enabled:
        logger.info("Remote status fallback disabled (PAYMENTS_STATUS_API_URL not set)")

    yield

    logger.info("Shutting down payments bridge...")
    await shutdown_services()


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="TikTokPay Payments Bridge",
    description="Payment webhooks, click attribution and status polling",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    uptime_seconds: float
    remote_status_enabled: bool


START_TIME = time.monotonic()


# ============================================================================
# MIDDLEWARE / ERROR HANDLERS
# ============================================================================

@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    """Add response timing header."""
    start = time.perf_counter()
    response = await call_next(request)
    duration = (time.perf_counter() - start) * 1000
    response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
    return response


@app.exception_handler(PaymentValidationError)
async def validation_error_handler(request: Request, exc: PaymentValidationError):
    logger.warning(f"Rejected {request.url.path}: {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})


async def read_json_object(request: Request) -> Dict[str, Any]:
    """Parse the body as a JSON object or reject the request."""
    try:
        body = await request.json()
    except ValueError:
        raise PaymentValidationError("Invalid JSON payload")
    if not isinstance(body, dict):
        raise PaymentValidationError("Invalid JSON payload")
    return body


def internal_error(e: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(e)},
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    uptime = time.monotonic() - START_TIME
    return HealthResponse(
        status="healthy",
        version=VERSION,
        uptime_seconds=uptime,
        remote_status_enabled=config.remote_status_enabled,
    )


@app.post("/api/webhook")
async def payment_webhook(request: Request, services: PaymentServices = Depends(get_services)):
    """
    Payment provider webhook.

    Accepts either provider schema, merges the transaction and reports
    whether it is paid.
    """
    payload = await read_json_object(request)

    try:
        ack = await services.transactions.process_webhook(payload)
    except PaymentValidationError:
        raise
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        return internal_error(e)

    return ack.model_dump(mode="json")


@app.post("/api/save-utm-query")
async def save_utm_query(request: Request, services: PaymentServices = Depends(get_services)):
    """Capture the utm query of a checkout before the payment completes."""
    body = await read_json_object(request)
    try:
        capture_request = UtmCaptureRequest.model_validate(body)
    except ValidationError:
        raise PaymentValidationError("transactionId and utmQuery are required")

    response = await services.capture.capture(capture_request)
    return response.model_dump(mode="json")


@app.post("/api/verifyPayment")
async def verify_payment(request: Request, services: PaymentServices = Depends(get_services)):
    """
    Payment status polling.

    Unknown transactions are reported as pending with a 200.
    """
    body = await read_json_object(request)
    try:
        poll_request = StatusPollRequest.model_validate(body)
    except ValidationError:
        raise PaymentValidationError("Transaction ID or Payment ID required")

    try:
        response = await services.poller.poll(poll_request)
    except PaymentValidationError:
        raise
    except Exception as e:
        logger.error(f"Status poll error: {e}", exc_info=True)
        return internal_error(e)

    return JSONResponse(content=response.to_payload())


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    uvicorn.run(
        "api.server:app",
        host="0.0.0.0",
        port=config.port,
        reload=os.getenv("ENV", "development") == "development",
        log_level="info"
    )

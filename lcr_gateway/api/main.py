"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from lcr_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from lcr_gateway.api.v1 import bins, payments, tokens
from lcr_gateway.config import settings
from lcr_gateway.infrastructure.observability.logging import setup_logging

setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.info(
        "Starting payment gateway",
        extra={
            "storage_backend": settings.storage_backend,
            "processor_backend": settings.processor_backend,
            "risk_signal_mode": settings.risk_signal_mode,
        },
    )
    yield
    logging.info("Payment gateway stopped")


def create_app() -> FastAPI:
    """Build the gateway app: payments, token vault and BIN lookup under /v1"""
    app = FastAPI(
        title="LCR Payment Gateway",
        description="Card payment gateway with least-cost network routing and tokenization",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Last added runs first, so every request has an id before it is timed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(tokens.router, prefix="/v1", tags=["tokens"])
    app.include_router(bins.router, prefix="/v1", tags=["bins"])

    return app


app = create_app()

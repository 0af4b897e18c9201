"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from clover_checkout.api.middleware import RequestIDMiddleware, MetricsMiddleware
from clover_checkout.api.v1 import charges, logs, orders, payments, refunds, tenders
from clover_checkout.infrastructure.observability.logging import setup_logging
from clover_checkout.config import settings

# Setup structured logging
setup_logging("DEBUG" if settings.debug_mode else settings.log_level, settings.log_file)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Clover Checkout",
        description="Clover payments, custom tenders and refunds for store orders",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(orders.router, prefix="/v1", tags=["orders"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(refunds.router, prefix="/v1", tags=["refunds"])
    app.include_router(charges.router, prefix="/v1", tags=["charges"])
    app.include_router(tenders.router, prefix="/v1", tags=["tenders"])
    app.include_router(logs.router, prefix="/v1", tags=["logs"])

    return app


app = create_app()

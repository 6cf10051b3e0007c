"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from cuotas_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from cuotas_gateway.api.v1 import admin, enrollments, payments, plans
from cuotas_gateway.api.v1.schemas import ErrorResponse
from cuotas_gateway.domain.exceptions import DomainException
from cuotas_gateway.infrastructure.observability.logging import setup_logging
from cuotas_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)

STATUS_BY_KIND = {
    "validation_error": 422,
    "policy_violation": 422,
    "conflict": 409,
    "not_found": 404,
    "payment_gateway_unavailable": 503,
}


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Translate domain errors into JSON responses"""
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logging.error(f"{exc.kind}: {exc}", extra={"request_id": getattr(request.state, "request_id", "unknown")})
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.kind,
            detail=str(exc),
            problems=getattr(exc, "problems", None) or [],
        ).model_dump(),
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Cuotas Gateway",
        description="Payment plans, installment schedules, migrations and refunds for camp enrollments",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(plans.router, prefix="/v1", tags=["plans"])
    app.include_router(enrollments.router, prefix="/v1", tags=["enrollments"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(admin.router, prefix="/v1", tags=["treasury"])

    return app


app = create_app()

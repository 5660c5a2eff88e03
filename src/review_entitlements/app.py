"""
FastAPI application for Review Entitlements
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .config import config
from .exceptions import register_exception_handlers
from .logging_config import setup_logging, RequestContextMiddleware
from .feature_routes import router as feature_router
from .quota_routes import router as quota_router
from .webhook_routes import router as webhook_router
from .admin_routes import router as admin_router
from .services.metrics import get_metrics_collector

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.ENABLE_SCHEDULER:
        from .services.scheduled_jobs import start_scheduler
        start_scheduler()
    yield
    if config.ENABLE_SCHEDULER:
        from .services.scheduled_jobs import stop_scheduler
        stop_scheduler()


def create_app() -> FastAPI:
    """Build the API application with middleware, error handlers and routes"""
    setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)

    app = FastAPI(title="Review Entitlements API", lifespan=lifespan)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(feature_router)
    app.include_router(quota_router)
    app.include_router(webhook_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        """Health check endpoint for load balancers and monitoring"""
        return {"status": "healthy", "service": "review-entitlements"}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics():
        """Prometheus text exposition of in-process metrics"""
        return get_metrics_collector().format_prometheus()

    logger.info(f"Review Entitlements API created (env={config.ENV})")
    return app


app = create_app()

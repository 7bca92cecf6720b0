from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from subtracker.api.routes import router as api_router
from subtracker.core.config import get_settings
from subtracker.core.database import run_migrations
from subtracker.logging import configure_logging
from subtracker.middleware.correlation_id import CorrelationIdMiddleware
from subtracker.middleware.request_logging import RequestLoggingMiddleware
from subtracker.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("subtracker.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.run_migrations_on_startup:
        run_migrations(settings.database_url)
    logger.info("system.started", extra={"service_name": settings.app_name})
    yield
    logger.info("system.stopped", extra={"service_name": settings.app_name})


app = FastAPI(title="Subscription Tracker API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("subscriptions-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())

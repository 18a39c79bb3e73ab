from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from crm_core.api.errors import register_exception_handlers
from crm_core.api.routes import router as api_router
from crm_core.core.config import get_settings
from crm_core.core.context import RequestContextMiddleware
from crm_core.logging import configure_logging
from crm_core.middleware.correlation_id import CorrelationIdMiddleware
from crm_core.middleware.request_logging import RequestLoggingMiddleware
from crm_core.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("crm_core.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("system.started", extra={"action": "startup", "resource": settings.app_env})
    yield
    logger.info("system.stopped", extra={"action": "shutdown", "resource": settings.app_env})


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.app_debug, lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)
register_exception_handlers(app)

if settings.otel_enabled:
    setup_otel("crm-core", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())

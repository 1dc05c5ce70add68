from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from sitedesk.api.routes import router as api_router
from sitedesk.audit import get_audit_dispatcher
from sitedesk.core.config import get_settings
from sitedesk.core.context import RequestContextMiddleware
from sitedesk.core.database import SessionLocal
from sitedesk.core.events import InternalEvent, event_bus
from sitedesk.logging import configure_logging
from sitedesk.middleware.correlation_id import CorrelationIdMiddleware
from sitedesk.middleware.request_logging import RequestLoggingMiddleware
from sitedesk.otel import get_fastapi_server_request_hook, setup_otel
from sitedesk.platform.flags.service import get_feature_flag_service


configure_logging()
logger = logging.getLogger("sitedesk.lifecycle")


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_project_assignment(event: InternalEvent) -> None:
    payload = event.payload
    logger.info(
        event.name,
        extra={"project_id": payload.get("project_id"), "sales_rep_id": payload.get("sales_rep_id")},
    )


def _seed_feature_flags() -> None:
    try:
        with SessionLocal() as session:
            created = get_feature_flag_service().seed_default_flags(session)
        logger.info("feature_flags_seeded", extra={"seeded_count": created})
    except Exception as exc:
        logger.warning("feature_flags_seed_failed", extra={"error": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    event_bus.subscribe("system.started", _on_system_started)
    event_bus.subscribe("project.sales_rep_assigned", _on_project_assignment)
    event_bus.subscribe("project.sales_rep_unassigned", _on_project_assignment)

    if settings.feature_flags_seed_defaults:
        _seed_feature_flags()

    dispatcher = get_audit_dispatcher()
    dispatcher.start()
    event_bus.publish("system.started", {"service": settings.app_name, "environment": settings.app_env})
    try:
        yield
    finally:
        dispatcher.stop()


settings = get_settings()
app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())

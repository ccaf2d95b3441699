"""HTTP entrypoint receiving provider webhook notifications."""

from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Request

from pspsync.common.config import settings
from pspsync.common.logging import configure_logging, logger
from pspsync.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from pspsync.common.startup import log_startup_config
from pspsync.common.tracing import instrument_app, setup_tracing
from pspsync.services.notification.schemas import NotificationRequest
from pspsync.services.notification.service import NotificationService
from pspsync.services.notification.store import HttpPaymentStore

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings,
    [
        "service_name",
        "store_api_url",
        "store_auth_url",
        "store_project_key",
        "store_client_secret",
        "hmac_key",
        "remove_sensitive_data",
        "notification_concurrency",
    ],
)
store = HttpPaymentStore.from_settings(settings)
service = NotificationService.from_settings(store, settings)

ACCEPTED_RESPONSE = {"notificationResponse": "[accepted]"}


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close the store client with the application lifecycle."""

    yield
    await store.close()


app = FastAPI(title="PSP Notification Reconciliation", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.post("/notifications")
async def receive_notifications(req: NotificationRequest):
    """Reconcile every notification item, then acknowledge the delivery.

    Per-notification failures are recorded by the service and never turned
    into a delivery failure for the provider.
    """

    outcomes = await service.process_items(req.notification_items)
    logger.info(
        "notification batch processed count=%s outcomes=%s",
        len(outcomes),
        [outcome.value for outcome in outcomes],
    )
    return ACCEPTED_RESPONSE


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}

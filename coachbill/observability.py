"""Request ids, access logging and request metrics for the billing API."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from coachbill.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger(__name__)

# Path parameters copied onto the access log when a route carries them.
BILLING_ID_PARAMS = ("coach_id", "client_id", "invoice_id", "payment_id")


def route_template(request: Request) -> str:
    """The matched route (``/invoices/{invoice_id}``) so metric labels stay bounded."""
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return route.path
    return request.url.path


def billing_ids(request: Request) -> dict[str, str]:
    params = request.scope.get("path_params") or {}
    return {key: str(params[key]) for key in BILLING_ID_PARAMS if params.get(key)}


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            self._observe(request, request_id, 500, start, failed=True)
            raise
        self._observe(request, request_id, response.status_code, start)
        response.headers["x-request-id"] = request_id
        return response

    @staticmethod
    def _observe(
        request: Request,
        request_id: str,
        status_code: int,
        start: float,
        failed: bool = False,
    ) -> None:
        duration = time.monotonic() - start
        path = route_template(request)
        labels = (request.method, path, str(status_code))
        REQUEST_COUNT.labels(*labels).inc()
        REQUEST_LATENCY.labels(*labels).observe(duration)
        if status_code >= 500:
            REQUEST_ERRORS.labels(*labels).inc()

        extra = {
            "request_id": request_id,
            "path": path,
            "method": request.method,
            "status": status_code,
            "duration_ms": round(duration * 1000.0, 2),
            **billing_ids(request),
        }
        if failed:
            logger.exception("request_failed", extra=extra)
        else:
            logger.info("request_completed", extra=extra)

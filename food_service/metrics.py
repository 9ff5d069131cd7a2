import time

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests",
    ["service", "method", "path", "status"],
)
LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["service", "method", "path"],
)
ORDERS_CREATED = Counter(
    "orders_created_total",
    "Orders placed, by outcome",
    ["status"],
)
ORDER_STATUS_TRANSITIONS = Counter(
    "order_status_transitions_total",
    "Order status changes, by source (sweep or admin) and target status",
    ["source", "to_status"],
)
ORDER_SWEEP_RUNS = Counter(
    "order_sweep_runs_total",
    "Order status sweep iterations, by outcome",
    ["outcome"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, service_name: str):
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        # use the route template so /orders/1 and /orders/2 share a series
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        LATENCY.labels(self.service_name, request.method, path).observe(time.perf_counter() - start)
        REQUESTS.labels(self.service_name, request.method, path, str(response.status_code)).inc()
        return response


def metrics_endpoint():
    return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

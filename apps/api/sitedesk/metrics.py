from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

policy_decisions_total = Counter(
    "policy_decisions_total",
    "Policy decisions",
    ["action", "outcome", "role"],
)

policy_evaluation_duration_seconds = Histogram(
    "policy_evaluation_duration_seconds",
    "Policy evaluation latency",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5),
)

sequence_allocations_total = Counter(
    "sequence_allocations_total",
    "Sequence allocations by counter name and outcome",
    ["name", "outcome"],
)

sales_assignments_total = Counter(
    "sales_assignments_total",
    "Sales rep assignment attempts by mode and outcome",
    ["mode", "outcome"],
)

feature_flag_cache_hit_total = Counter(
    "feature_flag_cache_hit_total",
    "Feature flag cache hits",
)

feature_flag_cache_miss_total = Counter(
    "feature_flag_cache_miss_total",
    "Feature flag cache misses",
)

audit_events_dropped_total = Counter(
    "audit_events_dropped_total",
    "Security audit events dropped because the dispatch queue was full",
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    return _INT_RE.sub("/{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_policy_decision(action: str, outcome: str, role: str) -> None:
    policy_decisions_total.labels(action=action, outcome=outcome, role=role).inc()


def observe_policy_evaluation(duration: float) -> None:
    policy_evaluation_duration_seconds.observe(duration)


def observe_sequence_allocation(name: str, outcome: str) -> None:
    sequence_allocations_total.labels(name=name, outcome=outcome).inc()


def observe_sales_assignment(mode: str, outcome: str) -> None:
    sales_assignments_total.labels(mode=mode, outcome=outcome).inc()


def observe_feature_flag_cache_hit() -> None:
    feature_flag_cache_hit_total.inc()


def observe_feature_flag_cache_miss() -> None:
    feature_flag_cache_miss_total.inc()


def observe_audit_event_dropped() -> None:
    audit_events_dropped_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

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

authz_denied_total = Counter(
    "authz_denied_total",
    "Access guard denials by action and resource kind",
    ["action", "resource"],
)

scope_fail_closed_total = Counter(
    "scope_fail_closed_total",
    "Scope filter rejections for identities without a tenant",
)

finance_aggregations_total = Counter(
    "finance_aggregations_total",
    "Financial aggregations computed",
    ["kind"],
)

finance_aggregation_errors_total = Counter(
    "finance_aggregation_errors_total",
    "Malformed storage group results rejected by the aggregator",
)

report_exports_total = Counter(
    "report_exports_total",
    "Rendered report exports by format",
    ["format"],
)

report_export_rows = Histogram(
    "report_export_rows",
    "Rows per rendered report export",
    ["format"],
    buckets=(0, 10, 50, 100, 500, 1000, 5000, 10000),
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_denied(action: str, resource: str) -> None:
    authz_denied_total.labels(action=action, resource=resource).inc()


def observe_scope_fail_closed() -> None:
    scope_fail_closed_total.inc()


def observe_aggregation(kind: str) -> None:
    finance_aggregations_total.labels(kind=kind).inc()


def observe_aggregation_error() -> None:
    finance_aggregation_errors_total.inc()


def observe_report_export(fmt: str, row_count: int) -> None:
    report_exports_total.labels(format=fmt).inc()
    report_export_rows.labels(format=fmt).observe(row_count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST

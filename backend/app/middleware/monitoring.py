"""Monitoring and observability middleware"""
import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "examadmin_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "examadmin_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

http_errors_total = Counter(
    "examadmin_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Authorization core metrics
policy_decisions_total = Counter(
    "admin_policy_decisions_total",
    "Policy gate decisions for guarded admin actions",
    ["action", "decision"]  # allow, step_up_required, approval_required, deny
)

step_up_total = Counter(
    "admin_step_up_total",
    "Step-up re-authentication attempts",
    ["outcome"]  # issued, invalid_credentials, two_factor_required, not_enrolled_mismatch
)

approval_transitions_total = Counter(
    "admin_approval_transitions_total",
    "Approval request status transitions",
    ["to_status"]  # pending, approved, rejected, expired, executed
)

break_glass_total = Counter(
    "admin_break_glass_total",
    "Break-glass overrides that bypassed dual approval"
)

csrf_failures_total = Counter(
    "admin_csrf_failures_total",
    "State-changing requests rejected by the CSRF guard"
)

authentication_failures_total = Counter(
    "admin_authentication_failures_total",
    "Total authentication failures",
    ["type"]  # login, session
)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics"""
        start_time = time.time()
        method = request.method

        # Add request ID for tracing
        request_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            status = response.status_code
            # Route is resolved once the app has handled the request; label by
            # template so ids in paths don't explode cardinality.
            endpoint = _route_template(request)

            duration = time.time() - start_time
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)

            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={
                        "request_id": request_id,
                        "method": method,
                        "path": endpoint,
                        "status": status,
                    }
                )

            if status >= 400:
                http_errors_total.labels(method=method, endpoint=endpoint, status=status).inc()

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception as e:
            endpoint = _route_template(request)
            http_errors_total.labels(method=method, endpoint=endpoint, status=500).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": endpoint,
                    "error": str(e)
                },
                exc_info=True
            )
            raise


def record_policy_decision(action: str, decision: str):
    """Record a policy gate outcome"""
    policy_decisions_total.labels(action=action, decision=decision).inc()


def record_step_up(outcome: str):
    """Record a step-up attempt"""
    step_up_total.labels(outcome=outcome).inc()


def record_approval_transition(to_status: str):
    """Record an approval status transition"""
    approval_transitions_total.labels(to_status=to_status).inc()


def record_break_glass():
    """Record a break-glass override"""
    break_glass_total.inc()


def record_csrf_failure():
    """Record a CSRF rejection"""
    csrf_failures_total.inc()


def record_auth_failure(auth_type: str):
    """Record authentication failure"""
    authentication_failures_total.labels(type=auth_type).inc()

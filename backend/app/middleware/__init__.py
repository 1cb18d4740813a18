"""Middleware modules for production-ready features"""
from app.middleware.monitoring import (
    MonitoringMiddleware,
    record_approval_transition,
    record_auth_failure,
    record_break_glass,
    record_csrf_failure,
    record_policy_decision,
    record_step_up,
)
from app.middleware.rate_limit import limiter, get_rate_limit

__all__ = [
    "MonitoringMiddleware",
    "record_approval_transition",
    "record_auth_failure",
    "record_break_glass",
    "record_csrf_failure",
    "record_policy_decision",
    "record_step_up",
    "limiter",
    "get_rate_limit"
]

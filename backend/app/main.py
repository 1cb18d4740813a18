"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from app.api import announcements, approvals, audit, auth, health, security_policy, sessions, users
from app.config import settings
from app.middleware.rate_limit import limiter
from app.services.runtime_policy import PolicyConfig, RuntimePolicyStore
from app.utils.errors import AdminGuardError
from app.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    policy = app.state.runtime_policy.get()
    logger.info("Exam admin backend starting up", extra={
        "version": "0.1.0",
        "environment": settings.HOST,
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED,
        "dual_approval": policy.dual_approval_required,
        "break_glass": policy.break_glass_enabled,
    })
    yield
    # Shutdown
    logger.info("Exam admin backend shutting down")


# Create FastAPI app
app = FastAPI(
    title="Exam Admin",
    description="Step-up authentication and dual approval for exam announcement administration",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Seeded from settings, changed at runtime through PUT /admin/security/policy
app.state.runtime_policy = RuntimePolicyStore(PolicyConfig.from_settings(settings))

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from app.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="examadmin_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting (the decorators consult app.state.limiter even when disabled)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else "unknown"
        }
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )

# ===== Route Setup =====

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(announcements.router)
app.include_router(approvals.router)
app.include_router(sessions.router)
app.include_router(audit.router)
app.include_router(security_policy.router)
app.include_router(users.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "Exam Admin",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(AdminGuardError)
async def admin_guard_error_handler(request: Request, exc: AdminGuardError):
    """Render authorization-core errors with their machine-readable code"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please contact support."
        }
    )

"""FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import settings
from .domain_errors import DomainError
from .problem_details import domain_error_handler
from .routers import cron, emails, orders, webhooks, work_items

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create app
app = FastAPI(
    title="Custom Ops",
    version="1.0.0",
    description="Order, email and work item reconciliation backend for custom fan production"
)

# Production safety checks.
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")
if settings.ENV.lower() == "production" and not settings.SHOPIFY_WEBHOOK_SECRET:
    raise RuntimeError("SHOPIFY_WEBHOOK_SECRET must be set in production.")

# CORS
cors_methods = ["GET", "POST", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

app.add_exception_handler(DomainError, domain_error_handler)

# Include routers
app.include_router(webhooks.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(emails.router, prefix="/api/v1")
app.include_router(work_items.router, prefix="/api/v1")
app.include_router(cron.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "1.0.0",
        "app": settings.APP_NAME,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Custom Ops API",
        "version": "1.0.0",
        "docs": "/docs"
    }

"""
Maintenance SLA - Main Application
===================================

SLA tracking and emergency escalation for property maintenance requests.

Modules:
- Maintenance SLA: deadline status, escalation sweep, acknowledgments

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services, ports and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, webhook notifications, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from maintenance_sla.config import settings
from maintenance_sla.core import ApplicationException, SystemClock

# Infrastructure
from maintenance_sla.infrastructure.database import (
    init_database, close_database, create_tables, get_session_maker
)

# SLA Module
from maintenance_sla.sla.application import (
    SLAService, AcknowledgmentHandler, EscalationEvaluator
)
from maintenance_sla.sla.infrastructure import (
    SQLAlchemyMaintenanceRequestRepository,
    EscalationConfigManager,
    WebhookNotificationDispatcher,
    LoggingAuditSink,
    EscalationScheduler,
)
from maintenance_sla.sla.interfaces import sla_router

# Shared
from maintenance_sla.shared.api import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from maintenance_sla.shared.infrastructure.logging import setup_logging, get_logger, log_latency
from maintenance_sla.shared.infrastructure.grafana import init_grafana_exporter, get_grafana_exporter

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load escalation configuration and watch it for changes
    4. Build services and store them on app.state
    5. Start the escalation sweep scheduler

    SHUTDOWN:
    1. Stop scheduler
    2. Stop config watcher
    3. Close webhook client
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Maintenance SLA service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()
    # Development convenience - production should use migrations
    await create_tables()

    logger.info("Loading escalation configuration")
    config_manager = EscalationConfigManager()
    config_manager.load(settings.escalation_config_path)
    config_manager.start_watching()

    if settings.grafana_host and settings.grafana_api_key and settings.grafana_instance_id:
        init_grafana_exporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id
        )

    clock = SystemClock()
    repository = SQLAlchemyMaintenanceRequestRepository(get_session_maker())
    dispatcher = WebhookNotificationDispatcher(
        webhook_url=settings.notification_webhook_url,
        app_url=settings.app_url,
        timeout_seconds=settings.notification_timeout_seconds,
        max_retries=settings.notification_max_retries
    )
    audit_sink = LoggingAuditSink()

    evaluator = EscalationEvaluator(
        repository=repository,
        dispatcher=dispatcher,
        audit_sink=audit_sink,
        config_provider=config_manager,
        clock=clock,
        deadline_seconds=settings.escalation_sweep_deadline_seconds,
        concurrency=settings.escalation_sweep_concurrency
    )

    app.state.settings = settings
    app.state.config_manager = config_manager
    app.state.sla_service = SLAService(repository, config_manager, clock)
    app.state.acknowledgment_handler = AcknowledgmentHandler(repository, audit_sink, clock)
    app.state.escalation_evaluator = evaluator

    async def escalation_sweep_job():
        """Background escalation sweep job."""
        with log_latency(logger, "escalation_sweep"):
            report = await evaluator.run_sweep()

        exporter = get_grafana_exporter()
        if exporter is not None:
            await exporter.export_sweep_metrics(report)

    scheduler = None
    if settings.escalation_sweep_interval_seconds > 0:
        scheduler = EscalationScheduler(interval_seconds=settings.escalation_sweep_interval_seconds)
        await scheduler.start(escalation_sweep_job)
    else:
        logger.info("Escalation scheduler disabled")
    app.state.scheduler = scheduler

    logger.info("Maintenance SLA service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Maintenance SLA service")

    if scheduler:
        await scheduler.stop()

    config_manager.stop_watching()
    await dispatcher.close()
    await close_database()

    logger.info("Maintenance SLA service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Maintenance SLA API",
    description="""
    ## Maintenance SLA & Emergency Escalation

    Tracks response and resolution deadlines on maintenance requests and
    escalates unacknowledged emergencies through up to three levels of
    notification recipients.

    **Endpoints:**
    - `GET /maintenance/requests/{id}/sla` - SLA status for a request
    - `POST /maintenance/requests/{id}/acknowledge` - Acknowledge an emergency
    - `POST /maintenance/requests/{id}/escalation` - Evaluate one request now
    - `GET /maintenance/emergencies` - Unacknowledged emergencies
    - `GET /maintenance/emergencies/stats` - Emergency statistics
    - `POST /maintenance/escalations/sweep` - Run a sweep now

    Escalation thresholds and recipients are read from
    `escalation_config.yaml` and reloaded when the file changes.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
# Added last runs first: correlation ID must be set before logging reads it
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "escalation_config": "loaded",
                        "escalation_scheduler": "running",
                        "notifications": "configured"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - Escalation configuration status
    - Scheduler state
    - Notification webhook configuration
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    config_manager = getattr(request.app.state, "config_manager", None)

    checks = {
        "escalation_config": "loaded" if config_manager is not None else "not_loaded",
        "escalation_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "notifications": "configured" if settings.notification_webhook_url else "not_configured"
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Maintenance SLA",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "maintenance": {
                "prefix": "/maintenance",
                "endpoints": [
                    "GET /maintenance/requests/{id}/sla - Get request SLA status",
                    "POST /maintenance/requests/{id}/acknowledge - Acknowledge emergency",
                    "POST /maintenance/requests/{id}/escalation - Evaluate one request",
                    "GET /maintenance/emergencies - List unacknowledged emergencies",
                    "GET /maintenance/emergencies/stats - Emergency statistics",
                    "POST /maintenance/escalations/sweep - Run escalation sweep"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "maintenance_sla.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )

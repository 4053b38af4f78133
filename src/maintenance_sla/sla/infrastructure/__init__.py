"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the maintenance SLA module:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer (SQLAlchemy and in-memory)
- External: Config watcher, webhook dispatcher, audit sink, scheduler
"""

from maintenance_sla.sla.infrastructure.models import MaintenanceRequestModel
from maintenance_sla.sla.infrastructure.repositories import (
    SQLAlchemyMaintenanceRequestRepository,
    InMemoryMaintenanceRequestRepository,
    StaticConfigProvider,
)
from maintenance_sla.sla.infrastructure.external import (
    EscalationConfigManager,
    CircuitBreaker,
    WebhookNotificationDispatcher,
    LoggingAuditSink,
    EscalationScheduler,
)

__all__ = [
    "MaintenanceRequestModel",
    "SQLAlchemyMaintenanceRequestRepository",
    "InMemoryMaintenanceRequestRepository",
    "StaticConfigProvider",
    "EscalationConfigManager",
    "CircuitBreaker",
    "WebhookNotificationDispatcher",
    "LoggingAuditSink",
    "EscalationScheduler",
]

"""
SLA Application Layer
======================

Application layer for the maintenance SLA & escalation module.

Contains:
- Services: Evaluator, acknowledgment handler and read service
- Ports: Repository, dispatcher, audit sink and config provider interfaces
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and the port interfaces,
but not on concrete infrastructure implementations.
"""

from maintenance_sla.sla.application.dto import (
    AcknowledgeRequest,
    SLAClockResponse,
    RequestSLAResponse,
    EmergencyResponse,
    EmergencyListResponse,
    EmergencyStatsResponse,
    AcknowledgmentResponse,
    SweepReportResponse,
)
from maintenance_sla.sla.application.services import (
    SLAService,
    AcknowledgmentHandler,
    EscalationEvaluator,
    IMaintenanceRequestRepository,
    INotificationDispatcher,
    IAuditSink,
    IEscalationConfigProvider,
)

__all__ = [
    # DTOs
    "AcknowledgeRequest",
    "SLAClockResponse",
    "RequestSLAResponse",
    "EmergencyResponse",
    "EmergencyListResponse",
    "EmergencyStatsResponse",
    "AcknowledgmentResponse",
    "SweepReportResponse",
    # Services
    "SLAService",
    "AcknowledgmentHandler",
    "EscalationEvaluator",
    # Ports
    "IMaintenanceRequestRepository",
    "INotificationDispatcher",
    "IAuditSink",
    "IEscalationConfigProvider",
]

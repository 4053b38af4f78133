"""
SLA Domain Layer
================

Domain layer for the maintenance SLA & escalation module.

Contains:
- Entities: MaintenanceRequest, SLASnapshot, SweepReport and friends
- Value Objects: EscalationConfig, EscalationThreshold
- Domain Services: SLACalculator, EscalationPolicy

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from maintenance_sla.sla.domain.entities import (
    MaintenanceRequest,
    NotificationDetails,
    SLAClockStatus,
    SLASnapshot,
    EscalationDecision,
    AcknowledgmentResult,
    EmergencyStats,
    SweepReport,
)
from maintenance_sla.sla.domain.value_objects import (
    SLACalculator,
    EscalationThreshold,
    EscalationPolicy,
    EscalationLevelConfig,
    EscalationConfig,
    DEFAULT_RISK_WINDOW,
)

__all__ = [
    # Entities
    "MaintenanceRequest",
    "NotificationDetails",
    "SLAClockStatus",
    "SLASnapshot",
    "EscalationDecision",
    "AcknowledgmentResult",
    "EmergencyStats",
    "SweepReport",
    # Value Objects & Services
    "SLACalculator",
    "EscalationThreshold",
    "EscalationPolicy",
    "EscalationLevelConfig",
    "EscalationConfig",
    "DEFAULT_RISK_WINDOW",
]

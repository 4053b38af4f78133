"""
SLA Application DTOs
=====================

Data Transfer Objects for the maintenance SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from maintenance_sla.sla.domain import (
    MaintenanceRequest, SLAClockStatus, SLASnapshot,
    AcknowledgmentResult, EmergencyStats, SweepReport
)


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["EMERGENCY", "HIGH", "MEDIUM", "LOW"]
RequestStatusStr = Literal[
    "SUBMITTED", "ACKNOWLEDGED", "SCHEDULED", "IN_PROGRESS",
    "PENDING_PARTS", "ON_HOLD", "COMPLETED", "CANCELLED"
]
SLATypeStr = Literal["response", "resolution"]
SLAStatusStr = Literal[
    "not_applicable", "on_track", "at_risk", "overdue",
    "achieved_on_time", "achieved_late"
]


# ========== Request DTOs ==========

class AcknowledgeRequest(BaseModel):
    """Request model for acknowledging an emergency."""
    user_id: str = Field(..., min_length=1, description="ID of the acknowledging staff member")


# ========== Response DTOs ==========

class SLAClockResponse(BaseModel):
    """Response model for a single SLA clock."""
    sla_type: SLATypeStr
    due_at: Optional[datetime] = Field(None, description="SLA deadline")
    achieved_at: Optional[datetime] = Field(None, description="When the SLA was achieved")
    status: SLAStatusStr = Field(..., description="Current SLA status")
    label: Optional[str] = Field(None, description="Human readable remaining/elapsed time")
    is_breached: bool = Field(..., description="Whether the deadline was missed")

    @classmethod
    def from_domain(cls, clock: SLAClockStatus) -> "SLAClockResponse":
        return cls(
            sla_type=clock.sla_type.value,
            due_at=clock.due_at,
            achieved_at=clock.achieved_at,
            status=clock.status.value,
            label=clock.label,
            is_breached=clock.is_breached
        )


class RequestSLAResponse(BaseModel):
    """Response model for SLA status of a maintenance request."""
    request_id: str
    evaluated_at: datetime
    response_sla: SLAClockResponse
    resolution_sla: SLAClockResponse
    overall_status: SLAStatusStr
    is_any_breached: bool
    is_at_risk: bool

    @classmethod
    def from_domain(cls, snapshot: SLASnapshot) -> "RequestSLAResponse":
        return cls(
            request_id=snapshot.request_id,
            evaluated_at=snapshot.evaluated_at,
            response_sla=SLAClockResponse.from_domain(snapshot.response),
            resolution_sla=SLAClockResponse.from_domain(snapshot.resolution),
            overall_status=snapshot.most_urgent_status.value,
            is_any_breached=snapshot.is_any_breached,
            is_at_risk=snapshot.is_at_risk
        )


class EmergencyResponse(BaseModel):
    """Response model for an unacknowledged emergency."""
    request_id: str
    request_number: Optional[str] = None
    title: Optional[str] = None
    priority: PriorityStr
    status: RequestStatusStr
    created_at: datetime
    escalation_level: int = Field(..., ge=0, le=3)
    last_escalated_at: Optional[datetime] = None
    sla: RequestSLAResponse

    @classmethod
    def from_domain(
        cls,
        request: MaintenanceRequest,
        snapshot: SLASnapshot
    ) -> "EmergencyResponse":
        return cls(
            request_id=request.id,
            request_number=request.request_number,
            title=request.title,
            priority=request.priority.value,
            status=request.status.value,
            created_at=request.created_at,
            escalation_level=request.escalation_level,
            last_escalated_at=request.last_escalated_at,
            sla=RequestSLAResponse.from_domain(snapshot)
        )


class EmergencyListResponse(BaseModel):
    """Response model for the unacknowledged emergency list."""
    emergencies: List[EmergencyResponse]
    total_count: int


class EmergencyStatsResponse(BaseModel):
    """Response model for emergency dashboard statistics."""
    active_emergencies: int
    unacknowledged_count: int
    average_acknowledgment_minutes: Optional[float] = Field(
        None, description="Average minutes from creation to acknowledgment"
    )

    @classmethod
    def from_domain(cls, stats: EmergencyStats) -> "EmergencyStatsResponse":
        return cls(
            active_emergencies=stats.active_emergencies,
            unacknowledged_count=stats.unacknowledged_count,
            average_acknowledgment_minutes=stats.average_acknowledgment_minutes
        )


class AcknowledgmentResponse(BaseModel):
    """Response model for an acknowledgment."""
    request_id: str
    acknowledged_at: datetime
    acknowledged_by: Optional[str] = None
    newly_acknowledged: bool = Field(
        ..., description="False when the request had already been acknowledged"
    )

    @classmethod
    def from_domain(cls, result: AcknowledgmentResult) -> "AcknowledgmentResponse":
        return cls(
            request_id=result.request_id,
            acknowledged_at=result.acknowledged_at,
            acknowledged_by=result.acknowledged_by,
            newly_acknowledged=result.newly_acknowledged
        )


class SweepReportResponse(BaseModel):
    """Response model for a sweep run."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float
    candidates: int
    escalated: int
    notified: int
    notification_failures: int
    conflicts: int
    errors: int
    breached: int
    at_risk: int
    timed_out: bool

    @classmethod
    def from_domain(cls, report: SweepReport) -> "SweepReportResponse":
        return cls(**report.to_dict())

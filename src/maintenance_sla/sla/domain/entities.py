"""
SLA Domain Entities
====================

Pure Python domain entities for maintenance SLA tracking and escalation.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from maintenance_sla.config import (
    Priority, RequestStatus, SLAType, SLAStatus,
    TERMINAL_STATUSES, MAX_ESCALATION_LEVEL
)
from maintenance_sla.core.clock import as_utc


@dataclass
class MaintenanceRequest:
    """
    Maintenance (work order) request as seen by the escalation engine.

    The record is owned by the surrounding application; the engine only
    reads these fields and writes the escalation/acknowledgment ones.
    """

    id: str
    priority: Priority
    status: RequestStatus
    created_at: datetime

    # SLA deadlines, set at creation by the SLA policy of the host application
    sla_response_due_at: Optional[datetime] = None
    sla_resolution_due_at: Optional[datetime] = None

    # SLA achievements
    first_responded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Escalation tracking
    escalation_level: int = 0
    last_escalated_at: Optional[datetime] = None
    last_escalation_notified_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None

    # Display fields
    request_number: Optional[str] = None
    title: Optional[str] = None

    def __post_init__(self):
        """Coerce enums and timestamps; validate escalation level."""
        self.priority = Priority(self.priority)
        self.status = RequestStatus(self.status)

        for name in (
            "created_at", "sla_response_due_at", "sla_resolution_due_at",
            "first_responded_at", "completed_at", "last_escalated_at",
            "last_escalation_notified_at", "acknowledged_at",
        ):
            setattr(self, name, as_utc(getattr(self, name)))

        if not 0 <= self.escalation_level <= MAX_ESCALATION_LEVEL:
            raise ValueError(
                f"escalation_level must be between 0 and {MAX_ESCALATION_LEVEL}"
            )

    @property
    def is_terminal(self) -> bool:
        """Completed and cancelled requests are never evaluated again."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_emergency(self) -> bool:
        return self.priority == Priority.EMERGENCY

    @property
    def is_acknowledged(self) -> bool:
        return self.acknowledged_at is not None

    @property
    def notification_pending(self) -> bool:
        """True when the current level has no confirmed notification yet."""
        if self.escalation_level == 0:
            return False
        if self.last_escalation_notified_at is None:
            return True
        if self.last_escalated_at is None:
            return False
        return self.last_escalation_notified_at < self.last_escalated_at


@dataclass
class NotificationDetails:
    """Display fields carried by an escalation message."""

    request_number: Optional[str]
    title: Optional[str]
    created_at: datetime
    sent_at: datetime

    @property
    def elapsed(self) -> timedelta:
        """Time the emergency has been open when the message goes out."""
        return max(self.sent_at - self.created_at, timedelta(0))

    @classmethod
    def from_request(cls, request: MaintenanceRequest, now: datetime) -> "NotificationDetails":
        return cls(
            request_number=request.request_number,
            title=request.title,
            created_at=request.created_at,
            sent_at=now,
        )


@dataclass
class SLAClockStatus:
    """Status of one SLA clock (response or resolution)."""

    sla_type: SLAType
    due_at: Optional[datetime]
    achieved_at: Optional[datetime]
    status: SLAStatus
    label: Optional[str] = None

    @property
    def is_breached(self) -> bool:
        return self.status in (SLAStatus.OVERDUE, SLAStatus.ACHIEVED_LATE)

    def to_dict(self) -> dict:
        return {
            "sla_type": self.sla_type.value,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "achieved_at": self.achieved_at.isoformat() if self.achieved_at else None,
            "status": self.status.value,
            "label": self.label,
            "is_breached": self.is_breached,
        }


@dataclass
class SLASnapshot:
    """
    SLA status of a request at a point in time.

    Shared by the escalation sweep and every read path so both classify
    deadlines identically.
    """

    request_id: str
    evaluated_at: datetime
    response: SLAClockStatus
    resolution: SLAClockStatus

    # Overall status (computed field)
    is_any_breached: bool = field(init=False)

    def __post_init__(self):
        self.is_any_breached = self.response.is_breached or self.resolution.is_breached

    @property
    def is_at_risk(self) -> bool:
        return SLAStatus.AT_RISK in (self.response.status, self.resolution.status)

    @property
    def most_urgent_status(self) -> SLAStatus:
        """Get the most urgent status across both clocks."""
        statuses = (self.response.status, self.resolution.status)
        for candidate in (
            SLAStatus.OVERDUE,
            SLAStatus.ACHIEVED_LATE,
            SLAStatus.AT_RISK,
            SLAStatus.ON_TRACK,
            SLAStatus.ACHIEVED_ON_TIME,
        ):
            if candidate in statuses:
                return candidate
        return SLAStatus.NOT_APPLICABLE

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "request_id": self.request_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "response": self.response.to_dict(),
            "resolution": self.resolution.to_dict(),
            "overall": {
                "status": self.most_urgent_status.value,
                "is_any_breached": self.is_any_breached,
                "is_at_risk": self.is_at_risk,
            },
        }


@dataclass(frozen=True)
class EscalationDecision:
    """Outcome of the escalation policy for one request."""
    level: int
    changed: bool


@dataclass
class AcknowledgmentResult:
    """Outcome of a staff acknowledgment."""
    request_id: str
    acknowledged_at: datetime
    acknowledged_by: Optional[str]
    newly_acknowledged: bool


@dataclass
class EmergencyStats:
    """Emergency overview for dashboards."""
    active_emergencies: int
    unacknowledged_count: int
    average_acknowledgment_minutes: Optional[float] = None


@dataclass
class SweepReport:
    """
    Counters of a single escalation sweep.

    Only consumed by logs and metrics.
    """

    started_at: datetime
    finished_at: Optional[datetime] = None
    candidates: int = 0
    escalated: int = 0
    notified: int = 0
    notification_failures: int = 0
    conflicts: int = 0
    errors: int = 0
    breached: int = 0
    at_risk: int = 0
    timed_out: bool = False

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "candidates": self.candidates,
            "escalated": self.escalated,
            "notified": self.notified,
            "notification_failures": self.notification_failures,
            "conflicts": self.conflicts,
            "errors": self.errors,
            "breached": self.breached,
            "at_risk": self.at_risk,
            "timed_out": self.timed_out,
        }

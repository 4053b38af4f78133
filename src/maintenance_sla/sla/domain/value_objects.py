"""
SLA Value Objects
==================

Immutable value objects and pure domain services for SLA tracking and
emergency escalation.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from maintenance_sla.config import (
    Priority, SLAType, SLAStatus, MAX_ESCALATION_LEVEL
)
from maintenance_sla.core import ConfigurationException
from maintenance_sla.sla.domain.entities import (
    MaintenanceRequest, SLAClockStatus, SLASnapshot, EscalationDecision
)

DEFAULT_RISK_WINDOW = timedelta(hours=2)
MINUTES_PER_DAY = 24 * 60


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA classification and labelling logic
    in one place.
    """

    @staticmethod
    def classify(
        due_at: Optional[datetime],
        achieved_at: Optional[datetime],
        now: datetime,
        risk_window: timedelta = DEFAULT_RISK_WINDOW
    ) -> SLAStatus:
        """
        Classify a single SLA clock.

        Args:
            due_at: The SLA deadline (None when the request has no SLA)
            achieved_at: When the SLA was achieved (first response/completion)
            now: Current time for evaluation
            risk_window: How close to the deadline counts as "at risk"

        Returns:
            SLAStatus: Current SLA status
        """
        if due_at is None:
            return SLAStatus.NOT_APPLICABLE

        if achieved_at is not None:
            if achieved_at <= due_at:
                return SLAStatus.ACHIEVED_ON_TIME
            return SLAStatus.ACHIEVED_LATE

        if now > due_at:
            return SLAStatus.OVERDUE
        if due_at - now <= risk_window:
            return SLAStatus.AT_RISK
        return SLAStatus.ON_TRACK

    @staticmethod
    def format_duration(delta: timedelta, suffix: str = "left") -> str:
        """
        Coarse human label for a duration.

        Uses the magnitude of the duration and the largest unit that applies:
        days from 24h, hours from 1h, minutes below that. Each unit is
        truncated toward zero, so 90 minutes is "1h".
        """
        minutes = int(abs(delta.total_seconds()) // 60)

        if minutes >= MINUTES_PER_DAY:
            text = f"{minutes // MINUTES_PER_DAY}d"
        elif minutes >= 60:
            text = f"{minutes // 60}h"
        else:
            text = f"{minutes}m"

        return f"{text} {suffix}" if suffix else text

    @staticmethod
    def time_label(
        due_at: Optional[datetime],
        achieved_at: Optional[datetime],
        now: datetime,
        risk_window: timedelta = DEFAULT_RISK_WINDOW
    ) -> Optional[str]:
        """
        Label for a clock: "3h early", "2h late", "1d overdue", "45m left".

        Returns None when the clock does not apply.
        """
        status = SLACalculator.classify(due_at, achieved_at, now, risk_window)

        if status == SLAStatus.NOT_APPLICABLE:
            return None
        if status == SLAStatus.ACHIEVED_ON_TIME:
            return SLACalculator.format_duration(due_at - achieved_at, "early")
        if status == SLAStatus.ACHIEVED_LATE:
            return SLACalculator.format_duration(achieved_at - due_at, "late")
        if status == SLAStatus.OVERDUE:
            return SLACalculator.format_duration(now - due_at, "overdue")
        return SLACalculator.format_duration(due_at - now, "left")

    @staticmethod
    def clock_status(
        sla_type: SLAType,
        due_at: Optional[datetime],
        achieved_at: Optional[datetime],
        now: datetime,
        risk_window: timedelta = DEFAULT_RISK_WINDOW
    ) -> SLAClockStatus:
        """Status and label of one clock."""
        return SLAClockStatus(
            sla_type=sla_type,
            due_at=due_at,
            achieved_at=achieved_at,
            status=SLACalculator.classify(due_at, achieved_at, now, risk_window),
            label=SLACalculator.time_label(due_at, achieved_at, now, risk_window)
        )

    @staticmethod
    def evaluate(
        request: MaintenanceRequest,
        now: datetime,
        risk_window: timedelta = DEFAULT_RISK_WINDOW
    ) -> SLASnapshot:
        """Evaluate both SLA clocks of a request."""
        return SLASnapshot(
            request_id=request.id,
            evaluated_at=now,
            response=SLACalculator.clock_status(
                SLAType.RESPONSE,
                request.sla_response_due_at,
                request.first_responded_at,
                now,
                risk_window
            ),
            resolution=SLACalculator.clock_status(
                SLAType.RESOLUTION,
                request.sla_resolution_due_at,
                request.completed_at,
                now,
                risk_window
            )
        )


@dataclass(frozen=True)
class EscalationThreshold:
    """Level reached once a request has been unacknowledged for `after`."""
    level: int
    after: timedelta


class EscalationPolicy:
    """
    Maps elapsed unacknowledged time to an escalation level.

    Thresholds are injected configuration. The policy is pure: the same
    inputs always give the same decision.
    """

    def __init__(self, thresholds: Sequence[EscalationThreshold]):
        ordered = sorted(thresholds, key=lambda t: t.level)

        levels = [t.level for t in ordered]
        if len(set(levels)) != len(levels):
            raise ConfigurationException("Escalation levels must be unique")
        for threshold in ordered:
            if not 1 <= threshold.level <= MAX_ESCALATION_LEVEL:
                raise ConfigurationException(
                    f"Escalation level {threshold.level} outside 1..{MAX_ESCALATION_LEVEL}"
                )
            if threshold.after < timedelta(0):
                raise ConfigurationException(
                    f"Escalation level {threshold.level} has a negative threshold"
                )
        for lower, higher in zip(ordered, ordered[1:]):
            if higher.after < lower.after:
                raise ConfigurationException(
                    f"Escalation level {higher.level} triggers before level {lower.level}"
                )

        self._thresholds = tuple(ordered)

    @property
    def thresholds(self) -> tuple:
        return self._thresholds

    def next_level(
        self,
        priority: Priority,
        created_at: datetime,
        acknowledged_at: Optional[datetime],
        current_level: int,
        now: datetime
    ) -> EscalationDecision:
        """
        Compute the level a request should be at.

        Non-emergency and acknowledged requests are frozen. Otherwise the
        highest satisfied threshold wins, which jumps straight past any
        intermediate levels a paused evaluator missed. The result is never
        lower than the current level.
        """
        if priority != Priority.EMERGENCY or acknowledged_at is not None:
            return EscalationDecision(level=current_level, changed=False)

        elapsed = now - created_at
        target = current_level
        for threshold in self._thresholds:
            if elapsed >= threshold.after and threshold.level > target:
                target = threshold.level

        return EscalationDecision(level=target, changed=target != current_level)


class EscalationLevelConfig(BaseModel):
    """Configuration for a single escalation level."""
    level: int = Field(ge=1, le=MAX_ESCALATION_LEVEL, description="Escalation level (1-based)")
    after_minutes: int = Field(ge=0, description="Minutes unacknowledged before this level")
    notify: List[str] = Field(default_factory=list, description="Notification recipients")


def _default_levels() -> List[EscalationLevelConfig]:
    return [
        EscalationLevelConfig(level=1, after_minutes=0, notify=["property-manager"]),
        EscalationLevelConfig(level=2, after_minutes=60, notify=["property-manager", "maintenance-lead"]),
        EscalationLevelConfig(level=3, after_minutes=240, notify=["property-manager", "maintenance-lead", "owner"]),
    ]


class EscalationConfig(BaseModel):
    """
    Escalation configuration loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    escalation_levels: List[EscalationLevelConfig] = Field(
        default_factory=_default_levels,
        description="Thresholds and recipients per escalation level"
    )
    at_risk_window_minutes: int = Field(
        default=120,
        ge=0,
        description="Minutes before a deadline an unachieved SLA counts as at risk"
    )

    @field_validator("escalation_levels")
    @classmethod
    def validate_levels(cls, v: List[EscalationLevelConfig]) -> List[EscalationLevelConfig]:
        """Levels must be unique and their thresholds non-decreasing."""
        ordered = sorted(v, key=lambda e: e.level)
        levels = [e.level for e in ordered]
        if len(set(levels)) != len(levels):
            raise ValueError("escalation levels must be unique")
        for lower, higher in zip(ordered, ordered[1:]):
            if higher.after_minutes < lower.after_minutes:
                raise ValueError(
                    f"level {higher.level} triggers before level {lower.level}"
                )
        return ordered

    @property
    def at_risk_window(self) -> timedelta:
        return timedelta(minutes=self.at_risk_window_minutes)

    def thresholds(self) -> List[EscalationThreshold]:
        return [
            EscalationThreshold(level=e.level, after=timedelta(minutes=e.after_minutes))
            for e in self.escalation_levels
        ]

    def build_policy(self) -> EscalationPolicy:
        return EscalationPolicy(self.thresholds())

    def get_recipients_for_level(self, level: int) -> List[str]:
        """Get recipients to notify for given escalation level."""
        for esc in self.escalation_levels:
            if esc.level == level:
                return esc.notify
        return []

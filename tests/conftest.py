"""
Shared fixtures for the maintenance SLA tests.

Time is driven by a ManualClock starting at T0; services run against the
in-memory repository with recording fakes for notifications and audit.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple

import pytest

from maintenance_sla.config import Priority, RequestStatus
from maintenance_sla.core import DispatchError, ManualClock
from maintenance_sla.sla.application import (
    AcknowledgmentHandler,
    EscalationEvaluator,
    IAuditSink,
    INotificationDispatcher,
    SLAService,
)
from maintenance_sla.sla.domain import MaintenanceRequest, NotificationDetails
from maintenance_sla.sla.infrastructure import (
    InMemoryMaintenanceRequestRepository,
    StaticConfigProvider,
)

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def make_request(request_id: str = "req-1", **overrides) -> MaintenanceRequest:
    """Open emergency created at T0 with a 1h response and 4h resolution SLA."""
    fields = dict(
        id=request_id,
        priority=Priority.EMERGENCY,
        status=RequestStatus.SUBMITTED,
        created_at=T0,
        sla_response_due_at=T0 + timedelta(hours=1),
        sla_resolution_due_at=T0 + timedelta(hours=4),
    )
    fields.update(overrides)
    return MaintenanceRequest(**fields)


class RecordingDispatcher(INotificationDispatcher):
    """Records delivered notifications; can be told to fail."""

    def __init__(self):
        self.sent: List[Tuple[str, int, List[str]]] = []
        self.details: List[Optional[NotificationDetails]] = []
        self.attempts = 0
        self.fail = False
        self.crash_ids: Set[str] = set()

    async def notify_escalation(
        self,
        request_id: str,
        level: int,
        recipients: List[str],
        details: Optional[NotificationDetails] = None,
    ) -> None:
        self.attempts += 1
        if request_id in self.crash_ids:
            raise RuntimeError(f"unexpected failure for {request_id}")
        if self.fail:
            raise DispatchError("webhook unavailable", {"request_id": request_id})
        self.sent.append((request_id, level, list(recipients)))
        self.details.append(details)

    def levels_for(self, request_id: str) -> List[int]:
        return [level for rid, level, _ in self.sent if rid == request_id]


class RecordingAuditSink(IAuditSink):
    """Collects audit records in memory."""

    def __init__(self, fail: bool = False):
        self.escalations: List[Tuple[str, int, int, datetime]] = []
        self.acknowledgments: List[Tuple[str, str, datetime]] = []
        self.fail = fail

    async def record_escalation(self, request_id, previous_level, new_level, at) -> None:
        if self.fail:
            raise RuntimeError("audit store down")
        self.escalations.append((request_id, previous_level, new_level, at))

    async def record_acknowledgment(self, request_id, user_id, at) -> None:
        if self.fail:
            raise RuntimeError("audit store down")
        self.acknowledgments.append((request_id, user_id, at))


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def repository():
    return InMemoryMaintenanceRequestRepository()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def config_provider():
    return StaticConfigProvider()


@pytest.fixture
def evaluator(repository, dispatcher, audit_sink, config_provider, clock):
    return EscalationEvaluator(
        repository=repository,
        dispatcher=dispatcher,
        audit_sink=audit_sink,
        config_provider=config_provider,
        clock=clock,
    )


@pytest.fixture
def ack_handler(repository, audit_sink, clock):
    return AcknowledgmentHandler(repository, audit_sink, clock)


@pytest.fixture
def sla_service(repository, config_provider, clock):
    return SLAService(repository, config_provider, clock)


@pytest.fixture
def add_request(repository):
    """Store a request built by make_request and return it."""

    async def _add(request_id: str = "req-1", **overrides) -> MaintenanceRequest:
        request = make_request(request_id, **overrides)
        await repository.add(request)
        return request

    return _add


def minutes(value: int) -> timedelta:
    return timedelta(minutes=value)


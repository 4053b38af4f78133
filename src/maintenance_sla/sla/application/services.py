"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain objects and the collaborators behind the ports below.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories, dispatcher,
  audit sink), not concrete implementations
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from maintenance_sla.core import (
    Clock, SystemClock,
    ApplicationException, NotFoundError, InvalidStateError,
    ConcurrencyConflict, DispatchError
)
from maintenance_sla.sla.domain import (
    MaintenanceRequest, NotificationDetails, SLASnapshot, SweepReport,
    AcknowledgmentResult, EmergencyStats,
    SLACalculator, EscalationConfig, EscalationPolicy
)
from maintenance_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Ports (Dependency Inversion) ==========

class IMaintenanceRequestRepository(ABC):
    """
    Interface for maintenance request data access.

    Both write methods are conditional: they only apply when the stored
    record still matches what the caller read, and report whether they did.
    """

    @abstractmethod
    async def add(self, request: MaintenanceRequest) -> MaintenanceRequest:
        """Store a new request."""

    @abstractmethod
    async def get_by_id(self, request_id: str) -> Optional[MaintenanceRequest]:
        """Get request by ID."""

    @abstractmethod
    async def fetch_escalation_candidates(self, now: datetime) -> List[MaintenanceRequest]:
        """Non-terminal, unacknowledged emergency requests."""

    @abstractmethod
    async def try_advance_escalation(
        self,
        request_id: str,
        expected_level: int,
        new_level: int,
        now: datetime
    ) -> bool:
        """Set the level if it is still `expected_level` and unacknowledged."""

    @abstractmethod
    async def mark_escalation_notified(
        self,
        request_id: str,
        level: int,
        now: datetime
    ) -> bool:
        """Record a confirmed notification for `level` if still current."""

    @abstractmethod
    async def try_acknowledge(
        self,
        request_id: str,
        user_id: str,
        now: datetime
    ) -> Tuple[bool, Optional[datetime]]:
        """
        Acknowledge if still unacknowledged and non-terminal.

        Returns (committed, acknowledged_at). Raises NotFoundError for
        unknown ids.
        """

    @abstractmethod
    async def emergency_stats(self) -> EmergencyStats:
        """Counts for the emergency dashboard."""


class INotificationDispatcher(ABC):
    """Outbound escalation notifications."""

    @abstractmethod
    async def notify_escalation(
        self,
        request_id: str,
        level: int,
        recipients: List[str],
        details: Optional[NotificationDetails] = None
    ) -> None:
        """
        Deliver an escalation notification.

        details carries the request number, title and open time for the
        message body when the caller has them.

        Raises DispatchError when delivery is not confirmed. May be called
        again for the same (request_id, level) after a failure.
        """


class IAuditSink(ABC):
    """Write-only audit trail."""

    @abstractmethod
    async def record_escalation(
        self,
        request_id: str,
        previous_level: int,
        new_level: int,
        at: datetime
    ) -> None:
        """Record a level transition."""

    @abstractmethod
    async def record_acknowledgment(
        self,
        request_id: str,
        user_id: str,
        at: datetime
    ) -> None:
        """Record a staff acknowledgment."""


class IEscalationConfigProvider(ABC):
    """Interface for escalation configuration access."""

    @abstractmethod
    def get_config(self) -> EscalationConfig:
        """Get current escalation configuration."""


# ========== Application Services ==========

class SLAService:
    """
    Read-side service for deadline status.

    Uses the same calculator and the same candidate query as the evaluator,
    so the dashboard never disagrees with what the sweep acts on.
    """

    def __init__(
        self,
        repository: IMaintenanceRequestRepository,
        config_provider: IEscalationConfigProvider,
        clock: Optional[Clock] = None
    ):
        self._repository = repository
        self._config_provider = config_provider
        self._clock = clock or SystemClock()

    async def get_request(self, request_id: str) -> MaintenanceRequest:
        request = await self._repository.get_by_id(request_id)
        if request is None:
            raise NotFoundError("MaintenanceRequest", request_id)
        return request

    async def get_sla_snapshot(self, request_id: str) -> SLASnapshot:
        """
        Calculate SLA status for a request.

        Raises:
            NotFoundError: if the request does not exist
        """
        request = await self.get_request(request_id)
        return self.snapshot_for(request)

    def snapshot_for(self, request: MaintenanceRequest) -> SLASnapshot:
        config = self._config_provider.get_config()
        return SLACalculator.evaluate(request, self._clock.now(), config.at_risk_window)

    async def list_unacknowledged_emergencies(
        self
    ) -> List[Tuple[MaintenanceRequest, SLASnapshot]]:
        """Unacknowledged open emergencies, oldest first, with SLA status."""
        requests = await self._repository.fetch_escalation_candidates(self._clock.now())
        requests = sorted(requests, key=lambda r: r.created_at)
        return [(request, self.snapshot_for(request)) for request in requests]

    async def get_emergency_stats(self) -> EmergencyStats:
        return await self._repository.emergency_stats()


class AcknowledgmentHandler:
    """
    Processes staff acknowledgments of emergency requests.

    Acknowledging freezes escalation permanently. Repeated or racing
    acknowledgments are idempotent: they report the first acknowledgment.
    """

    def __init__(
        self,
        repository: IMaintenanceRequestRepository,
        audit_sink: IAuditSink,
        clock: Optional[Clock] = None
    ):
        self._repository = repository
        self._audit_sink = audit_sink
        self._clock = clock or SystemClock()

    async def acknowledge(
        self,
        request_id: str,
        user_id: str,
        now: Optional[datetime] = None
    ) -> AcknowledgmentResult:
        """
        Acknowledge a request.

        Raises:
            NotFoundError: if the request does not exist
            InvalidStateError: if the request is completed or cancelled
        """
        now = now or self._clock.now()

        committed, acknowledged_at = await self._repository.try_acknowledge(
            request_id, user_id, now
        )

        if committed:
            logger.info(
                "Escalation acknowledged",
                extra={"request_id": request_id, "user_id": user_id}
            )
            try:
                await self._audit_sink.record_acknowledgment(request_id, user_id, now)
            except Exception as e:
                logger.warning(
                    "Audit record for acknowledgment failed",
                    extra={"request_id": request_id, "error": str(e)}
                )
            return AcknowledgmentResult(
                request_id=request_id,
                acknowledged_at=now,
                acknowledged_by=user_id,
                newly_acknowledged=True
            )

        request = await self._repository.get_by_id(request_id)
        if request is None:
            raise NotFoundError("MaintenanceRequest", request_id)

        if acknowledged_at is None:
            # Nothing to race against: only a terminal status rejects the write
            raise InvalidStateError(request_id, request.status.value, "acknowledge")

        logger.info(
            "Request already acknowledged",
            extra={"request_id": request_id, "user_id": user_id}
        )
        return AcknowledgmentResult(
            request_id=request_id,
            acknowledged_at=acknowledged_at,
            acknowledged_by=request.acknowledged_by,
            newly_acknowledged=False
        )


class EscalationEvaluator:
    """
    Recurring escalation sweep.

    Each sweep:
    1. Fetches open, unacknowledged emergency requests
    2. Classifies their SLA clocks (breach / at-risk detection)
    3. Applies the escalation policy and persists level transitions with a
       conditional write
    4. Notifies once per transition, retrying unconfirmed notifications on
       later sweeps

    Holds no state between sweeps; several evaluator instances may run
    against the same store.
    """

    def __init__(
        self,
        repository: IMaintenanceRequestRepository,
        dispatcher: INotificationDispatcher,
        audit_sink: IAuditSink,
        config_provider: IEscalationConfigProvider,
        clock: Optional[Clock] = None,
        deadline_seconds: float = 240.0,
        concurrency: int = 1
    ):
        self._repository = repository
        self._dispatcher = dispatcher
        self._audit_sink = audit_sink
        self._config_provider = config_provider
        self._clock = clock or SystemClock()
        self._deadline_seconds = deadline_seconds
        self._concurrency = max(1, concurrency)

    async def run_sweep(self) -> SweepReport:
        """
        Evaluate all candidates once.

        Returns:
            SweepReport with counters for logs and metrics
        """
        report = SweepReport(started_at=self._clock.now())
        config = self._config_provider.get_config()
        policy = config.build_policy()

        deadline = time.monotonic() + self._deadline_seconds
        processed = await self._sweep(config, policy, report, deadline)

        if processed < report.candidates:
            report.timed_out = True
            logger.warning(
                "Escalation sweep deadline exceeded, remaining requests deferred",
                extra={
                    "deadline_seconds": self._deadline_seconds,
                    "deferred": report.candidates - processed,
                }
            )

        report.finished_at = self._clock.now()
        logger.info("Escalation sweep complete", extra=report.to_dict())
        return report

    async def evaluate_request(self, request_id: str) -> SweepReport:
        """
        Evaluate a single request immediately.

        Used when an emergency is created so the first alert does not wait
        for the next sweep.

        Raises:
            NotFoundError: if the request does not exist
        """
        request = await self._repository.get_by_id(request_id)
        if request is None:
            raise NotFoundError("MaintenanceRequest", request_id)

        config = self._config_provider.get_config()
        report = SweepReport(started_at=self._clock.now())

        if request.is_emergency and not request.is_terminal and not request.is_acknowledged:
            report.candidates = 1
            await self._process_safely(request, config, config.build_policy(), report)

        report.finished_at = self._clock.now()
        return report

    async def _sweep(
        self,
        config: EscalationConfig,
        policy: EscalationPolicy,
        report: SweepReport,
        deadline: float
    ) -> int:
        """
        Process candidates until the deadline passes; return how many ran.

        The deadline is checked before a request is started. A request
        already in progress always runs to completion, so a confirmed
        delivery is never left unrecorded.
        """
        candidates = await self._repository.fetch_escalation_candidates(self._clock.now())
        report.candidates = len(candidates)
        processed = 0

        if self._concurrency == 1:
            for request in candidates:
                if time.monotonic() >= deadline:
                    break
                await self._process_safely(request, config, policy, report)
                processed += 1
            return processed

        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(request: MaintenanceRequest) -> None:
            nonlocal processed
            async with semaphore:
                if time.monotonic() >= deadline:
                    return
                processed += 1
                await self._process_safely(request, config, policy, report)

        await asyncio.gather(*(bounded(request) for request in candidates))
        return processed

    async def _process_safely(
        self,
        request: MaintenanceRequest,
        config: EscalationConfig,
        policy: EscalationPolicy,
        report: SweepReport
    ) -> None:
        """Per-request errors never abort the sweep."""
        try:
            await self._process(request, config, policy, report)
        except ConcurrencyConflict as e:
            report.conflicts += 1
            logger.info(
                "Escalation skipped, request changed concurrently",
                extra={"request_id": request.id, "operation": e.operation}
            )
        except ApplicationException as e:
            report.errors += 1
            logger.error(
                "Escalation evaluation failed",
                extra={"request_id": request.id, "error": e.message}
            )
        except Exception:
            report.errors += 1
            logger.exception(
                "Unexpected error during escalation evaluation",
                extra={"request_id": request.id}
            )

    async def _process(
        self,
        request: MaintenanceRequest,
        config: EscalationConfig,
        policy: EscalationPolicy,
        report: SweepReport
    ) -> None:
        now = self._clock.now()

        snapshot = SLACalculator.evaluate(request, now, config.at_risk_window)
        if snapshot.is_any_breached:
            report.breached += 1
            logger.warning(
                "SLA breached",
                extra={
                    "request_id": request.id,
                    "response_status": snapshot.response.status.value,
                    "resolution_status": snapshot.resolution.status.value,
                }
            )
        elif snapshot.is_at_risk:
            report.at_risk += 1

        decision = policy.next_level(
            request.priority,
            request.created_at,
            request.acknowledged_at,
            request.escalation_level,
            now
        )

        if decision.changed:
            committed = await self._repository.try_advance_escalation(
                request.id, request.escalation_level, decision.level, now
            )
            if not committed:
                raise ConcurrencyConflict(request.id, "advance_escalation")

            report.escalated += 1
            logger.info(
                "Emergency escalated",
                extra={
                    "request_id": request.id,
                    "previous_level": request.escalation_level,
                    "level": decision.level,
                }
            )
            await self._record_escalation(request.id, request.escalation_level, decision.level, now)
            await self._notify(request, decision.level, config, report)

        elif request.notification_pending:
            logger.info(
                "Retrying unconfirmed escalation notification",
                extra={"request_id": request.id, "level": request.escalation_level}
            )
            await self._notify(request, request.escalation_level, config, report)

    async def _notify(
        self,
        request: MaintenanceRequest,
        level: int,
        config: EscalationConfig,
        report: SweepReport
    ) -> None:
        """Dispatch after the transition has committed; no lock is held here."""
        request_id = request.id
        recipients = config.get_recipients_for_level(level)
        details = NotificationDetails.from_request(request, self._clock.now())

        try:
            await self._dispatcher.notify_escalation(request_id, level, recipients, details)
        except DispatchError as e:
            report.notification_failures += 1
            logger.warning(
                "Escalation notification failed, will retry next sweep",
                extra={"request_id": request_id, "level": level, "error": e.message}
            )
            return

        await self._repository.mark_escalation_notified(request_id, level, self._clock.now())
        report.notified += 1

    async def _record_escalation(
        self,
        request_id: str,
        previous_level: int,
        new_level: int,
        at: datetime
    ) -> None:
        try:
            await self._audit_sink.record_escalation(request_id, previous_level, new_level, at)
        except Exception as e:
            logger.warning(
                "Audit record for escalation failed",
                extra={"request_id": request_id, "error": str(e)}
            )

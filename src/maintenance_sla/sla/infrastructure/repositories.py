"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the repository and config provider interfaces.

Every write is a conditional update: the SQL repository puts the expected
state in the WHERE clause and checks the row count; the in-memory repository
does the same check under a per-request lock.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from maintenance_sla.config import Priority, OPEN_STATUSES
from maintenance_sla.core import NotFoundError, RepositoryException, as_utc
from maintenance_sla.sla.application import (
    IMaintenanceRequestRepository, IEscalationConfigProvider
)
from maintenance_sla.sla.domain import MaintenanceRequest, EmergencyStats, EscalationConfig
from maintenance_sla.sla.infrastructure.models import MaintenanceRequestModel

OPEN_STATUS_VALUES = [s.value for s in OPEN_STATUSES]


def _average_minutes(pairs: List[Tuple[datetime, datetime]]) -> Optional[float]:
    """Average minutes between (created_at, acknowledged_at) pairs."""
    if not pairs:
        return None
    total = sum((as_utc(acked) - as_utc(created)).total_seconds() for created, acked in pairs)
    return round(total / len(pairs) / 60, 2)


def _check_monotonic(expected_level: int, new_level: int) -> None:
    if new_level <= expected_level:
        raise ValueError(
            f"Escalation level must increase (expected {expected_level}, got {new_level})"
        )


class SQLAlchemyMaintenanceRequestRepository(IMaintenanceRequestRepository):
    """
    SQLAlchemy implementation of the maintenance request repository.

    Each operation runs in its own short transaction so the conditional
    updates are safe across several engine instances.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise RepositoryException(f"Maintenance request store failure: {e}") from e

    @staticmethod
    def _to_entity(model: MaintenanceRequestModel) -> MaintenanceRequest:
        return MaintenanceRequest(
            id=model.id,
            priority=model.priority,
            status=model.status,
            created_at=model.created_at,
            sla_response_due_at=model.sla_response_due_at,
            sla_resolution_due_at=model.sla_resolution_due_at,
            first_responded_at=model.first_responded_at,
            completed_at=model.completed_at,
            escalation_level=model.escalation_level,
            last_escalated_at=model.last_escalated_at,
            last_escalation_notified_at=model.last_escalation_notified_at,
            acknowledged_at=model.acknowledged_at,
            acknowledged_by=model.acknowledged_by,
            request_number=model.request_number,
            title=model.title
        )

    async def add(self, request: MaintenanceRequest) -> MaintenanceRequest:
        """Store a new request."""
        model = MaintenanceRequestModel(
            id=request.id,
            request_number=request.request_number,
            title=request.title,
            priority=request.priority.value,
            status=request.status.value,
            created_at=request.created_at,
            sla_response_due_at=request.sla_response_due_at,
            sla_resolution_due_at=request.sla_resolution_due_at,
            first_responded_at=request.first_responded_at,
            completed_at=request.completed_at,
            escalation_level=request.escalation_level,
            last_escalated_at=request.last_escalated_at,
            last_escalation_notified_at=request.last_escalation_notified_at,
            acknowledged_at=request.acknowledged_at,
            acknowledged_by=request.acknowledged_by
        )

        async with self._transaction() as session:
            session.add(model)

        return request

    async def get_by_id(self, request_id: str) -> Optional[MaintenanceRequest]:
        """Get request by ID."""
        async with self._transaction() as session:
            model = await session.get(MaintenanceRequestModel, request_id)
            return self._to_entity(model) if model else None

    async def fetch_escalation_candidates(self, now: datetime) -> List[MaintenanceRequest]:
        """Open, unacknowledged emergencies, oldest first."""
        stmt = (
            select(MaintenanceRequestModel)
            .where(
                MaintenanceRequestModel.priority == Priority.EMERGENCY.value,
                MaintenanceRequestModel.status.in_(OPEN_STATUS_VALUES),
                MaintenanceRequestModel.acknowledged_at.is_(None)
            )
            .order_by(MaintenanceRequestModel.created_at.asc())
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return [self._to_entity(model) for model in result.scalars().all()]

    async def try_advance_escalation(
        self,
        request_id: str,
        expected_level: int,
        new_level: int,
        now: datetime
    ) -> bool:
        """Compare-and-swap on (escalation_level, acknowledged_at IS NULL)."""
        _check_monotonic(expected_level, new_level)

        stmt = (
            update(MaintenanceRequestModel)
            .where(
                MaintenanceRequestModel.id == request_id,
                MaintenanceRequestModel.escalation_level == expected_level,
                MaintenanceRequestModel.acknowledged_at.is_(None),
                MaintenanceRequestModel.priority == Priority.EMERGENCY.value,
                MaintenanceRequestModel.status.in_(OPEN_STATUS_VALUES)
            )
            .values(escalation_level=new_level, last_escalated_at=now)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def mark_escalation_notified(
        self,
        request_id: str,
        level: int,
        now: datetime
    ) -> bool:
        """Record a confirmed notification unless the level moved on."""
        stmt = (
            update(MaintenanceRequestModel)
            .where(
                MaintenanceRequestModel.id == request_id,
                MaintenanceRequestModel.escalation_level == level
            )
            .values(last_escalation_notified_at=now)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def try_acknowledge(
        self,
        request_id: str,
        user_id: str,
        now: datetime
    ) -> Tuple[bool, Optional[datetime]]:
        """Compare-and-swap on (acknowledged_at IS NULL, non-terminal)."""
        stmt = (
            update(MaintenanceRequestModel)
            .where(
                MaintenanceRequestModel.id == request_id,
                MaintenanceRequestModel.acknowledged_at.is_(None),
                MaintenanceRequestModel.status.in_(OPEN_STATUS_VALUES)
            )
            .values(acknowledged_at=now, acknowledged_by=user_id)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            if result.rowcount == 1:
                return True, now

            current = await session.execute(
                select(MaintenanceRequestModel.acknowledged_at)
                .where(MaintenanceRequestModel.id == request_id)
            )
            row = current.one_or_none()
            if row is None:
                raise NotFoundError("MaintenanceRequest", request_id)
            return False, as_utc(row.acknowledged_at)

    async def emergency_stats(self) -> EmergencyStats:
        """Counts for the emergency dashboard."""
        is_emergency = MaintenanceRequestModel.priority == Priority.EMERGENCY.value
        is_open = MaintenanceRequestModel.status.in_(OPEN_STATUS_VALUES)

        async with self._transaction() as session:
            active = await session.scalar(
                select(func.count()).select_from(MaintenanceRequestModel)
                .where(is_emergency, is_open)
            )
            unacknowledged = await session.scalar(
                select(func.count()).select_from(MaintenanceRequestModel)
                .where(
                    is_emergency,
                    is_open,
                    MaintenanceRequestModel.escalation_level > 0,
                    MaintenanceRequestModel.acknowledged_at.is_(None)
                )
            )
            acknowledged = await session.execute(
                select(MaintenanceRequestModel.created_at, MaintenanceRequestModel.acknowledged_at)
                .where(is_emergency, MaintenanceRequestModel.acknowledged_at.is_not(None))
            )
            pairs = [(row.created_at, row.acknowledged_at) for row in acknowledged.all()]

        return EmergencyStats(
            active_emergencies=active or 0,
            unacknowledged_count=unacknowledged or 0,
            average_acknowledgment_minutes=_average_minutes(pairs)
        )


class InMemoryMaintenanceRequestRepository(IMaintenanceRequestRepository):
    """
    In-process repository for single-instance deployments and tests.

    A per-request asyncio.Lock covers each read-modify-write; it is never
    held across a notification. Not safe across processes.
    """

    def __init__(self):
        self._requests: Dict[str, MaintenanceRequest] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def add(self, request: MaintenanceRequest) -> MaintenanceRequest:
        lock = self._locks.setdefault(request.id, asyncio.Lock())
        async with lock:
            self._requests[request.id] = replace(request)
        return request

    async def get_by_id(self, request_id: str) -> Optional[MaintenanceRequest]:
        stored = self._requests.get(request_id)
        return replace(stored) if stored else None

    async def fetch_escalation_candidates(self, now: datetime) -> List[MaintenanceRequest]:
        candidates = [
            replace(request) for request in self._requests.values()
            if request.is_emergency and not request.is_terminal and not request.is_acknowledged
        ]
        return sorted(candidates, key=lambda r: r.created_at)

    async def try_advance_escalation(
        self,
        request_id: str,
        expected_level: int,
        new_level: int,
        now: datetime
    ) -> bool:
        _check_monotonic(expected_level, new_level)

        lock = self._locks.get(request_id)
        if lock is None:
            return False
        async with lock:
            stored = self._requests.get(request_id)
            if (
                stored is None
                or stored.escalation_level != expected_level
                or stored.is_acknowledged
                or stored.is_terminal
                or not stored.is_emergency
            ):
                return False
            stored.escalation_level = new_level
            stored.last_escalated_at = now
            return True

    async def mark_escalation_notified(
        self,
        request_id: str,
        level: int,
        now: datetime
    ) -> bool:
        lock = self._locks.get(request_id)
        if lock is None:
            return False
        async with lock:
            stored = self._requests.get(request_id)
            if stored is None or stored.escalation_level != level:
                return False
            stored.last_escalation_notified_at = now
            return True

    async def try_acknowledge(
        self,
        request_id: str,
        user_id: str,
        now: datetime
    ) -> Tuple[bool, Optional[datetime]]:
        lock = self._locks.get(request_id)
        if lock is None:
            raise NotFoundError("MaintenanceRequest", request_id)
        async with lock:
            stored = self._requests.get(request_id)
            if stored is None:
                raise NotFoundError("MaintenanceRequest", request_id)
            if stored.is_acknowledged:
                return False, stored.acknowledged_at
            if stored.is_terminal:
                return False, None
            stored.acknowledged_at = now
            stored.acknowledged_by = user_id
            return True, now

    async def emergency_stats(self) -> EmergencyStats:
        emergencies = [r for r in self._requests.values() if r.is_emergency]
        active = [r for r in emergencies if not r.is_terminal]
        return EmergencyStats(
            active_emergencies=len(active),
            unacknowledged_count=sum(
                1 for r in active if r.escalation_level > 0 and not r.is_acknowledged
            ),
            average_acknowledgment_minutes=_average_minutes([
                (r.created_at, r.acknowledged_at) for r in emergencies if r.is_acknowledged
            ])
        )


class StaticConfigProvider(IEscalationConfigProvider):
    """Config provider returning a fixed configuration."""

    def __init__(self, config: Optional[EscalationConfig] = None):
        self._config = config or EscalationConfig()

    def get_config(self) -> EscalationConfig:
        return self._config

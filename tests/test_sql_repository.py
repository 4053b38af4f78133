"""
Tests for the SQLAlchemy repository against SQLite (aiosqlite).
"""

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from maintenance_sla.config import Priority, RequestStatus
from maintenance_sla.core import ManualClock, NotFoundError
from maintenance_sla.infrastructure.database import (
    Base,
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from maintenance_sla.sla.application import AcknowledgmentHandler, EscalationEvaluator
from maintenance_sla.sla.infrastructure import (
    SQLAlchemyMaintenanceRequestRepository,
    StaticConfigProvider,
)

from conftest import T0, RecordingAuditSink, RecordingDispatcher, make_request, minutes


@pytest.fixture
async def sql_repository(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sla.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SQLAlchemyMaintenanceRequestRepository(
        async_sessionmaker(engine, expire_on_commit=False)
    )

    await engine.dispose()


async def test_add_and_get(sql_repository):
    await sql_repository.add(make_request("req-1", request_number="WO-1001", title="Burst pipe"))

    stored = await sql_repository.get_by_id("req-1")

    assert stored.priority == Priority.EMERGENCY
    assert stored.status == RequestStatus.SUBMITTED
    assert stored.created_at == T0
    assert stored.created_at.tzinfo is not None
    assert stored.sla_response_due_at == T0 + minutes(60)
    assert stored.request_number == "WO-1001"
    assert stored.escalation_level == 0


async def test_get_missing_returns_none(sql_repository):
    assert await sql_repository.get_by_id("missing") is None


async def test_candidates_are_open_unacknowledged_emergencies(sql_repository):
    await sql_repository.add(make_request("newer", created_at=T0 + minutes(10)))
    await sql_repository.add(make_request("older"))
    await sql_repository.add(make_request("high", priority=Priority.HIGH))
    await sql_repository.add(make_request("done", status=RequestStatus.COMPLETED))
    await sql_repository.add(make_request("acked", acknowledged_at=T0))

    candidates = await sql_repository.fetch_escalation_candidates(T0)

    assert [c.id for c in candidates] == ["older", "newer"]


async def test_advance_is_conditional_on_expected_level(sql_repository):
    await sql_repository.add(make_request("req-1"))

    assert await sql_repository.try_advance_escalation("req-1", 0, 1, T0)
    assert not await sql_repository.try_advance_escalation("req-1", 0, 1, T0)

    stored = await sql_repository.get_by_id("req-1")
    assert stored.escalation_level == 1
    assert stored.last_escalated_at == T0


async def test_advance_refused_after_acknowledgment(sql_repository):
    await sql_repository.add(make_request("req-1"))
    await sql_repository.try_acknowledge("req-1", "user-1", T0)

    assert not await sql_repository.try_advance_escalation("req-1", 0, 1, T0 + minutes(1))
    assert (await sql_repository.get_by_id("req-1")).escalation_level == 0


async def test_advance_must_increase(sql_repository):
    await sql_repository.add(make_request("req-1", escalation_level=2))

    with pytest.raises(ValueError):
        await sql_repository.try_advance_escalation("req-1", 2, 1, T0)


async def test_mark_notified_ignores_stale_level(sql_repository):
    await sql_repository.add(make_request("req-1"))
    await sql_repository.try_advance_escalation("req-1", 0, 1, T0)

    assert not await sql_repository.mark_escalation_notified("req-1", 2, T0)
    assert await sql_repository.mark_escalation_notified("req-1", 1, T0)

    stored = await sql_repository.get_by_id("req-1")
    assert stored.last_escalation_notified_at == T0
    assert not stored.notification_pending


async def test_acknowledge_once(sql_repository):
    await sql_repository.add(make_request("req-1"))

    committed, first_at = await sql_repository.try_acknowledge("req-1", "user-1", T0 + minutes(5))
    again, existing_at = await sql_repository.try_acknowledge("req-1", "user-2", T0 + minutes(9))

    assert committed
    assert first_at == T0 + minutes(5)
    assert not again
    assert existing_at == T0 + minutes(5)
    assert (await sql_repository.get_by_id("req-1")).acknowledged_by == "user-1"


async def test_acknowledge_terminal_request(sql_repository):
    await sql_repository.add(make_request("req-1", status=RequestStatus.CANCELLED))

    committed, acknowledged_at = await sql_repository.try_acknowledge("req-1", "user-1", T0)

    assert not committed
    assert acknowledged_at is None


async def test_acknowledge_missing_request(sql_repository):
    with pytest.raises(NotFoundError):
        await sql_repository.try_acknowledge("missing", "user-1", T0)


async def test_emergency_stats(sql_repository):
    await sql_repository.add(make_request("escalated", escalation_level=1))
    await sql_repository.add(make_request("fresh"))
    await sql_repository.add(make_request(
        "acked", escalation_level=1, acknowledged_at=T0 + minutes(10), acknowledged_by="u"
    ))
    await sql_repository.add(make_request(
        "closed", status=RequestStatus.COMPLETED, acknowledged_at=T0 + minutes(20)
    ))
    await sql_repository.add(make_request("other", priority=Priority.LOW, escalation_level=0))

    stats = await sql_repository.emergency_stats()

    assert stats.active_emergencies == 3
    assert stats.unacknowledged_count == 1
    assert stats.average_acknowledgment_minutes == 15.0


async def test_emergency_stats_without_acknowledgments(sql_repository):
    stats = await sql_repository.emergency_stats()

    assert stats.active_emergencies == 0
    assert stats.average_acknowledgment_minutes is None


async def test_escalation_timeline_on_sql_store(sql_repository):
    clock = ManualClock(T0)
    dispatcher = RecordingDispatcher()
    evaluator = EscalationEvaluator(
        sql_repository, dispatcher, RecordingAuditSink(), StaticConfigProvider(), clock
    )
    await sql_repository.add(make_request("req-1"))

    await evaluator.run_sweep()
    clock.set(T0 + minutes(90))
    await evaluator.run_sweep()
    clock.set(T0 + minutes(300))
    await evaluator.run_sweep()
    await evaluator.run_sweep()

    assert dispatcher.levels_for("req-1") == [1, 2, 3]

    handler = AcknowledgmentHandler(sql_repository, RecordingAuditSink(), clock)
    result = await handler.acknowledge("req-1", "user-1")
    assert result.newly_acknowledged
    assert await sql_repository.fetch_escalation_candidates(clock.now()) == []


async def test_init_database_and_create_tables(tmp_path):
    init_database(f"sqlite+aiosqlite:///{tmp_path / 'init.db'}")
    try:
        await create_tables()
        repository = SQLAlchemyMaintenanceRequestRepository(get_session_maker())
        await repository.add(make_request("req-1"))

        assert (await repository.get_by_id("req-1")).id == "req-1"
    finally:
        await close_database()

    with pytest.raises(RuntimeError):
        get_session_maker()

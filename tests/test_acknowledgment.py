"""
Tests for emergency acknowledgment.
"""

import asyncio

import pytest

from maintenance_sla.config import Priority, RequestStatus
from maintenance_sla.core import InvalidStateError, NotFoundError
from maintenance_sla.sla.application import AcknowledgmentHandler

from conftest import T0, RecordingAuditSink, minutes


async def test_first_acknowledgment(ack_handler, repository, audit_sink, clock, add_request):
    await add_request("req-1")
    clock.set(T0 + minutes(7))

    result = await ack_handler.acknowledge("req-1", "user-1")

    assert result.newly_acknowledged
    assert result.acknowledged_at == T0 + minutes(7)
    assert result.acknowledged_by == "user-1"

    stored = await repository.get_by_id("req-1")
    assert stored.acknowledged_at == T0 + minutes(7)
    assert stored.acknowledged_by == "user-1"
    assert audit_sink.acknowledgments == [("req-1", "user-1", T0 + minutes(7))]


async def test_second_acknowledgment_is_idempotent(ack_handler, audit_sink, clock, add_request):
    await add_request("req-1")
    first = await ack_handler.acknowledge("req-1", "user-1")

    clock.advance(minutes(30))
    second = await ack_handler.acknowledge("req-1", "user-2")

    assert not second.newly_acknowledged
    assert second.acknowledged_at == first.acknowledged_at
    assert second.acknowledged_by == "user-1"
    assert len(audit_sink.acknowledgments) == 1


async def test_racing_acknowledgments_commit_once(ack_handler, audit_sink, add_request):
    await add_request("req-1")

    results = await asyncio.gather(
        ack_handler.acknowledge("req-1", "user-1"),
        ack_handler.acknowledge("req-1", "user-2"),
        ack_handler.acknowledge("req-1", "user-3"),
    )

    assert sum(1 for r in results if r.newly_acknowledged) == 1
    assert len({r.acknowledged_at for r in results}) == 1
    assert len(audit_sink.acknowledgments) == 1


async def test_unknown_request(ack_handler):
    with pytest.raises(NotFoundError):
        await ack_handler.acknowledge("missing", "user-1")


async def test_unknown_ids_leave_no_lock_behind(ack_handler, repository):
    for i in range(3):
        with pytest.raises(NotFoundError):
            await ack_handler.acknowledge(f"missing-{i}", "user-1")

    assert not await repository.try_advance_escalation("missing-0", 0, 1, T0)
    assert not await repository.mark_escalation_notified("missing-0", 1, T0)
    assert repository._locks == {}


@pytest.mark.parametrize("status", [RequestStatus.COMPLETED, RequestStatus.CANCELLED])
async def test_terminal_request_is_rejected(ack_handler, audit_sink, add_request, status):
    await add_request("req-1", status=status)

    with pytest.raises(InvalidStateError):
        await ack_handler.acknowledge("req-1", "user-1")

    assert audit_sink.acknowledgments == []


async def test_acknowledged_then_completed_still_reports_acknowledgment(ack_handler, repository, add_request):
    await add_request(
        "req-1",
        status=RequestStatus.COMPLETED,
        acknowledged_at=T0 + minutes(3),
        acknowledged_by="user-1",
    )

    result = await ack_handler.acknowledge("req-1", "user-2")

    assert not result.newly_acknowledged
    assert result.acknowledged_at == T0 + minutes(3)


async def test_non_emergency_can_be_acknowledged(ack_handler, add_request):
    await add_request("req-1", priority=Priority.LOW)

    result = await ack_handler.acknowledge("req-1", "user-1")

    assert result.newly_acknowledged


async def test_acknowledged_before_first_sweep_never_escalates(ack_handler, evaluator, repository, dispatcher, clock, add_request):
    await add_request("req-1")
    await ack_handler.acknowledge("req-1", "user-1")

    clock.set(T0 + minutes(600))
    await evaluator.run_sweep()

    assert (await repository.get_by_id("req-1")).escalation_level == 0
    assert dispatcher.sent == []


async def test_audit_failure_does_not_fail_acknowledgment(repository, clock, add_request):
    handler = AcknowledgmentHandler(repository, RecordingAuditSink(fail=True), clock)
    await add_request("req-1")

    result = await handler.acknowledge("req-1", "user-1")

    assert result.newly_acknowledged
    assert (await repository.get_by_id("req-1")).is_acknowledged


async def test_explicit_timestamp(ack_handler, add_request):
    await add_request("req-1")

    result = await ack_handler.acknowledge("req-1", "user-1", now=T0 + minutes(42))

    assert result.acknowledged_at == T0 + minutes(42)

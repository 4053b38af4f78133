"""
SLA Controllers (API Routes)
=============================

FastAPI routes for maintenance SLA and emergency escalation endpoints.

Controllers are thin - they delegate to application services, which are
built once at startup and kept on app.state.
"""

from fastapi import APIRouter, Depends, Request, status

from maintenance_sla.sla.application import (
    SLAService,
    AcknowledgmentHandler,
    EscalationEvaluator,
    AcknowledgeRequest,
    RequestSLAResponse,
    EmergencyResponse,
    EmergencyListResponse,
    EmergencyStatsResponse,
    AcknowledgmentResponse,
    SweepReportResponse,
)
from maintenance_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/maintenance", tags=["Maintenance SLA"])


# ========== Example payloads for Swagger ==========

REQUEST_SLA_RESPONSE_EXAMPLE = {
    "request_id": "req-001",
    "evaluated_at": "2024-01-15T11:30:00Z",
    "response_sla": {
        "sla_type": "response",
        "due_at": "2024-01-15T12:00:00Z",
        "achieved_at": None,
        "status": "at_risk",
        "label": "30m left",
        "is_breached": False
    },
    "resolution_sla": {
        "sla_type": "resolution",
        "due_at": "2024-01-15T14:00:00Z",
        "achieved_at": None,
        "status": "on_track",
        "label": "2h left",
        "is_breached": False
    },
    "overall_status": "at_risk",
    "is_any_breached": False,
    "is_at_risk": True
}

ACKNOWLEDGMENT_RESPONSE_EXAMPLE = {
    "request_id": "req-001",
    "acknowledged_at": "2024-01-15T10:42:00Z",
    "acknowledged_by": "user-17",
    "newly_acknowledged": True
}

SWEEP_REPORT_EXAMPLE = {
    "started_at": "2024-01-15T10:05:00Z",
    "finished_at": "2024-01-15T10:05:01Z",
    "duration_seconds": 0.84,
    "candidates": 3,
    "escalated": 1,
    "notified": 1,
    "notification_failures": 0,
    "conflicts": 0,
    "errors": 0,
    "breached": 1,
    "at_risk": 1,
    "timed_out": False
}


# ========== Dependencies ==========

def get_sla_service(request: Request) -> SLAService:
    """Get SLA read service instance."""
    return request.app.state.sla_service


def get_acknowledgment_handler(request: Request) -> AcknowledgmentHandler:
    """Get acknowledgment handler instance."""
    return request.app.state.acknowledgment_handler


def get_escalation_evaluator(request: Request) -> EscalationEvaluator:
    """Get escalation evaluator instance."""
    return request.app.state.escalation_evaluator


# ========== Route Handlers ==========

@router.get(
    "/requests/{request_id}/sla",
    response_model=RequestSLAResponse,
    summary="Get request SLA status",
    description="""
    Get response and resolution SLA status for a single maintenance request.

    **SLA Statuses:**
    - `not_applicable`: No deadline set
    - `on_track`: Deadline further away than the at-risk window
    - `at_risk`: Deadline within the at-risk window
    - `overdue`: Deadline passed, not achieved
    - `achieved_on_time` / `achieved_late`: Achieved before / after the deadline
    """,
    responses={
        200: {
            "description": "Request SLA information",
            "content": {"application/json": {"example": REQUEST_SLA_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Request not found"}
    }
)
async def get_request_sla(
    request_id: str,
    sla_service: SLAService = Depends(get_sla_service)
):
    snapshot = await sla_service.get_sla_snapshot(request_id)
    return RequestSLAResponse.from_domain(snapshot)


@router.post(
    "/requests/{request_id}/acknowledge",
    response_model=AcknowledgmentResponse,
    summary="Acknowledge an emergency request",
    description="""
    Record that a staff member has seen the request. Escalation stops
    permanently once a request is acknowledged.

    **Idempotent**: acknowledging again returns the original acknowledgment
    with `newly_acknowledged: false`.
    """,
    responses={
        200: {
            "description": "Request acknowledged",
            "content": {"application/json": {"example": ACKNOWLEDGMENT_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Request not found"},
        409: {"description": "Request is completed or cancelled"}
    }
)
async def acknowledge_request(
    request_id: str,
    body: AcknowledgeRequest,
    handler: AcknowledgmentHandler = Depends(get_acknowledgment_handler)
):
    result = await handler.acknowledge(request_id, body.user_id)
    return AcknowledgmentResponse.from_domain(result)


@router.post(
    "/requests/{request_id}/escalation",
    response_model=SweepReportResponse,
    summary="Evaluate escalation for one request",
    description="""
    Run the escalation evaluation for a single request immediately, e.g.
    right after an emergency is submitted so the first alert does not wait
    for the next sweep. Non-emergency, acknowledged and closed requests are
    left untouched.
    """,
    responses={
        200: {
            "description": "Evaluation report",
            "content": {"application/json": {"example": SWEEP_REPORT_EXAMPLE}}
        },
        404: {"description": "Request not found"}
    }
)
async def evaluate_request_escalation(
    request_id: str,
    evaluator: EscalationEvaluator = Depends(get_escalation_evaluator)
):
    report = await evaluator.evaluate_request(request_id)
    return SweepReportResponse.from_domain(report)


@router.get(
    "/emergencies",
    response_model=EmergencyListResponse,
    summary="List unacknowledged emergencies",
    description="""
    Open emergency requests nobody has acknowledged yet, oldest first, with
    their escalation level and SLA status.
    """
)
async def list_emergencies(
    sla_service: SLAService = Depends(get_sla_service)
):
    items = await sla_service.list_unacknowledged_emergencies()
    emergencies = [
        EmergencyResponse.from_domain(request, snapshot)
        for request, snapshot in items
    ]
    return EmergencyListResponse(emergencies=emergencies, total_count=len(emergencies))


@router.get(
    "/emergencies/stats",
    response_model=EmergencyStatsResponse,
    summary="Emergency statistics",
    description="""
    - `active_emergencies`: open emergency requests
    - `unacknowledged_count`: escalated and still unacknowledged
    - `average_acknowledgment_minutes`: mean time from creation to acknowledgment
    """
)
async def get_emergency_stats(
    sla_service: SLAService = Depends(get_sla_service)
):
    stats = await sla_service.get_emergency_stats()
    return EmergencyStatsResponse.from_domain(stats)


@router.post(
    "/escalations/sweep",
    response_model=SweepReportResponse,
    status_code=status.HTTP_200_OK,
    summary="Run an escalation sweep now",
    description="""
    Runs one escalation sweep immediately, outside the background schedule.
    Useful for operations and for cron-driven deployments.
    """,
    responses={
        200: {
            "description": "Sweep report",
            "content": {"application/json": {"example": SWEEP_REPORT_EXAMPLE}}
        }
    }
)
async def run_escalation_sweep(
    evaluator: EscalationEvaluator = Depends(get_escalation_evaluator)
):
    logger.info("Manual escalation sweep requested")
    report = await evaluator.run_sweep()
    return SweepReportResponse.from_domain(report)


# Export router as sla_router for main.py
sla_router = router

"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the maintenance SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from maintenance_sla.infrastructure.database import Base
from maintenance_sla.config import Priority, RequestStatus


class MaintenanceRequestModel(Base):
    """
    Database model for the MaintenanceRequest entity.

    Maps to the 'maintenance_requests' table. The host application owns the
    rest of the work order; this table carries the columns the engine reads
    and writes.
    """
    __tablename__ = "maintenance_requests"

    # Primary key (opaque identifier from the host application)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    request_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RequestStatus.SUBMITTED.value)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    # SLA deadlines and achievements
    sla_response_due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_resolution_due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Escalation
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_escalation_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Acknowledgment
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        # Candidate scan: open unacknowledged emergencies
        Index("ix_maintenance_requests_escalation", "priority", "status", "acknowledged_at"),
    )

# backend/moveout/models.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


# -----------------------------
# Audit / workflow event log
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False, index=True)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class WorkflowEvent(Base):
    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Meter index drafts
# -----------------------------
class MeterReadingDraft(Base):
    """
    Operator-entered index for one meter of an inspection, kept between live
    validation and completion.
    """

    __tablename__ = "meter_reading_drafts"
    __table_args__ = (
        UniqueConstraint("inspection_id", "meter_id", name="uq_meter_reading_drafts_inspection_meter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    meter_id: Mapped[str] = mapped_column(String(80), nullable=False)

    index_text: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_kind: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Billing runs
# -----------------------------
class BillingRun(Base):
    __tablename__ = "billing_runs"
    __table_args__ = (Index("ix_billing_runs_inspection_created", "inspection_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    unit_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    cycle_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    readings_submitted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    readings_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoices_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoices_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    export_errors_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    damage_invoice_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    damage_invoice_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    warnings_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    damage_total: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    utility_total: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_payable: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    utility_source: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    snapshot_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    poll_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # scheduled|settled|exhausted|cancelled
    poll_status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

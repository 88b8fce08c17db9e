"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.String(length=80), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])

    op.create_table(
        "workflow_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inspection_id", sa.String(length=80), nullable=True),
        sa.Column("actor_id", sa.String(length=80), nullable=True),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_workflow_events_inspection_id", "workflow_events", ["inspection_id"])
    op.create_index("ix_workflow_events_event_type", "workflow_events", ["event_type"])

    op.create_table(
        "meter_reading_drafts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inspection_id", sa.String(length=80), nullable=False),
        sa.Column("meter_id", sa.String(length=80), nullable=False),
        sa.Column("index_text", sa.String(length=40), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("error_kind", sa.String(length=40), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("inspection_id", "meter_id", name="uq_meter_reading_drafts_inspection_meter"),
    )
    op.create_index("ix_meter_reading_drafts_inspection_id", "meter_reading_drafts", ["inspection_id"])

    op.create_table(
        "billing_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inspection_id", sa.String(length=80), nullable=False),
        sa.Column("unit_id", sa.String(length=80), nullable=True),
        sa.Column("cycle_id", sa.String(length=80), nullable=True),
        sa.Column("readings_submitted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("readings_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invoices_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invoices_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("export_errors_json", sa.Text(), nullable=True),
        sa.Column("damage_invoice_id", sa.String(length=80), nullable=True),
        sa.Column("damage_invoice_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("warnings_json", sa.Text(), nullable=True),
        sa.Column("damage_total", sa.Float(), nullable=True),
        sa.Column("utility_total", sa.Float(), nullable=True),
        sa.Column("total_payable", sa.Float(), nullable=True),
        sa.Column("utility_source", sa.String(length=40), nullable=True),
        sa.Column("snapshot_json", sa.Text(), nullable=True),
        sa.Column("poll_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("poll_status", sa.String(length=20), nullable=False, server_default="scheduled"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_billing_runs_inspection_id", "billing_runs", ["inspection_id"])
    op.create_index("ix_billing_runs_inspection_created", "billing_runs", ["inspection_id", "created_at"])


def downgrade():
    op.drop_index("ix_billing_runs_inspection_created", table_name="billing_runs")
    op.drop_index("ix_billing_runs_inspection_id", table_name="billing_runs")
    op.drop_table("billing_runs")
    op.drop_index("ix_meter_reading_drafts_inspection_id", table_name="meter_reading_drafts")
    op.drop_table("meter_reading_drafts")
    op.drop_index("ix_workflow_events_event_type", table_name="workflow_events")
    op.drop_index("ix_workflow_events_inspection_id", table_name="workflow_events")
    op.drop_table("workflow_events")
    op.drop_index("ix_audit_events_entity_id", table_name="audit_events")
    op.drop_table("audit_events")

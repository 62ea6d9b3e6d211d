# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial CourseDesk schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-03-03

Creates the catalog tables the enrollment ledger reads (courses,
participants), the ledger tables (enrollments, enrollment_code_counters)
and the audit log.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create CourseDesk tables."""
    # ==========================================================================
    # 1. courses
    # ==========================================================================
    op.create_table(
        "courses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PUBLISHED"),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("max_seats", sa.Integer, nullable=True),
        sa.Column("filled_seats", sa.Integer, nullable=False, server_default="0"),
        sa.Column("starts_on", sa.Date, nullable=True),
        sa.Column("ends_on", sa.Date, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("filled_seats >= 0", name="ck_courses_filled_seats_non_negative"),
        sa.CheckConstraint(
            "max_seats IS NULL OR max_seats >= 0",
            name="ck_courses_max_seats_non_negative",
        ),
        sa.CheckConstraint(
            "max_seats IS NULL OR filled_seats <= max_seats",
            name="ck_courses_filled_seats_within_capacity",
        ),
    )

    # ==========================================================================
    # 2. participants
    # ==========================================================================
    op.create_table(
        "participants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("document_type", sa.String(20), nullable=False),
        sa.Column("document_number", sa.String(20), nullable=False),
        sa.Column("first_names", sa.String(100), nullable=False),
        sa.Column("last_names", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("document_type", "document_number", name="uq_participants_document"),
    )

    # ==========================================================================
    # 3. enrollments
    # ==========================================================================
    op.create_table(
        "enrollments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column(
            "participant_id",
            sa.String(36),
            sa.ForeignKey("participants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("payment_state", sa.String(10), nullable=False, server_default="PENDING"),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_date", sa.Date, nullable=True),
        sa.Column("attended", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("registrar_id", sa.String(36), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("code", name="uq_enrollments_code"),
        sa.UniqueConstraint("participant_id", "course_id", name="uq_enrollments_participant_course"),
        sa.CheckConstraint("amount_paid >= 0", name="ck_enrollments_amount_paid_non_negative"),
    )
    op.create_index("ix_enrollments_participant_id", "enrollments", ["participant_id"])
    op.create_index("ix_enrollments_course_id", "enrollments", ["course_id"])

    # ==========================================================================
    # 4. enrollment_code_counters
    # ==========================================================================
    op.create_table(
        "enrollment_code_counters",
        sa.Column("prefix", sa.String(10), primary_key=True),
        sa.Column("year", sa.Integer, primary_key=True),
        sa.Column("last_value", sa.Integer, nullable=False, server_default="0"),
    )

    # ==========================================================================
    # 5. audit_logs
    # ==========================================================================
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("entity", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.String(36), nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        sa.Column("success", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    """Drop CourseDesk tables."""
    op.drop_table("audit_logs")
    op.drop_table("enrollment_code_counters")
    op.drop_table("enrollments")
    op.drop_table("participants")
    op.drop_table("courses")

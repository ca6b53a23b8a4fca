"""add prescription, schedule slot and intake log tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "prescriptions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("medicine_name", sa.String(length=255), nullable=False),
        sa.Column("dose", sa.String(length=64), nullable=False),
        sa.Column(
            "form",
            sa.Enum("Tablet", "Capsule", "Liquid", "Injection", "Cream", "Inhaler", name="medicine_form"),
            nullable=False,
            server_default="Tablet",
        ),
        sa.Column("quantity", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("start_date <= end_date", name="ck_prescriptions_treatment_window"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_prescriptions_user_id_created_at", "prescriptions", ["user_id", "created_at"])

    op.create_table(
        "prescription_schedules",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("prescription_id", sa.String(length=36), nullable=False),
        sa.Column("time_of_day", sa.String(length=5), nullable=False),
        sa.Column("tablet_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["prescription_id"], ["prescriptions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prescription_id", "time_of_day", name="uq_prescription_schedules_prescription_time"),
    )

    op.create_table(
        "medicine_intake_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("prescription_id", sa.String(length=36), nullable=False),
        sa.Column("schedule_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "taken", "missed", "skipped", name="intake_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["prescription_id"], ["prescriptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["schedule_id"], ["prescription_schedules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prescription_id", "schedule_id", "date", name="uq_intake_logs_prescription_schedule_date"),
    )
    op.create_index("ix_intake_logs_user_id_date", "medicine_intake_logs", ["user_id", "date"])


def downgrade() -> None:
    op.drop_index("ix_intake_logs_user_id_date", table_name="medicine_intake_logs")
    op.drop_table("medicine_intake_logs")

    op.drop_table("prescription_schedules")

    op.drop_index("ix_prescriptions_user_id_created_at", table_name="prescriptions")
    op.drop_table("prescriptions")

    op.execute("DROP TYPE IF EXISTS intake_status")
    op.execute("DROP TYPE IF EXISTS medicine_form")

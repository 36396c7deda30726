"""Violation catalog, corrective actions, signatures and point adjustments

Revision ID: 0002_discipline_tracker
Revises: 0001_initial
Create Date: 2026-10-01 00:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_discipline_tracker"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

severity_level = postgresql.ENUM(
    "MINOR",
    "MODERATE",
    "SERIOUS",
    "CRITICAL",
    "IMMEDIATE_TERMINATION",
    name="severity_level",
    create_type=False,
)
discipline_level = postgresql.ENUM(
    "GOOD_STANDING",
    "COACHING",
    "VERBAL_WARNING",
    "WRITTEN_WARNING",
    "FINAL_WARNING",
    "TERMINATION",
    name="discipline_level",
    create_type=False,
)
corrective_action_status = postgresql.ENUM(
    "PENDING_SIGNATURE",
    "ACKNOWLEDGED",
    "DISPUTED",
    "VOIDED",
    name="corrective_action_status",
    create_type=False,
)
signer_role = postgresql.ENUM(
    "EMPLOYEE",
    "SUPERVISOR",
    "WITNESS",
    "HR",
    name="signer_role",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    severity_level.create(bind, checkfirst=True)
    discipline_level.create(bind, checkfirst=True)
    corrective_action_status.create(bind, checkfirst=True)
    signer_role.create(bind, checkfirst=True)

    op.create_table(
        "violation_categories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("category_name", sa.String(length=255), nullable=False),
        sa.Column("severity_level", severity_level, nullable=False),
        sa.Column("default_points", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint("default_points >= 0", name="ck_violation_categories_default_points_non_negative"),
    )
    op.create_index(
        "ix_violation_categories_severity_level",
        "violation_categories",
        ["severity_level"],
        unique=False,
    )

    op.create_table(
        "corrective_actions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("violation_category_id", sa.Integer(), nullable=False),
        sa.Column("issued_by_id", sa.Integer(), nullable=False),
        sa.Column("violation_date", sa.Date(), nullable=False),
        sa.Column("violation_time", sa.String(length=5), nullable=True),
        sa.Column("incident_description", sa.Text(), nullable=True),
        sa.Column("mitigating_circumstances", sa.Text(), nullable=True),
        sa.Column("points_assigned", sa.Integer(), nullable=False),
        sa.Column("points_adjusted", sa.Integer(), nullable=True),
        sa.Column("adjustment_reason", sa.Text(), nullable=True),
        sa.Column("discipline_level", discipline_level, nullable=False),
        sa.Column(
            "corrective_expectations",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("consequences_text", sa.Text(), nullable=True),
        sa.Column("pip_scheduled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("pip_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            corrective_action_status,
            nullable=False,
            server_default=sa.text("'PENDING_SIGNATURE'"),
        ),
        sa.Column("employee_comments", sa.Text(), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided_by_id", sa.Integer(), nullable=True),
        sa.Column("void_reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["violation_category_id"], ["violation_categories.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["issued_by_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["voided_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_corrective_actions_employee_id", "corrective_actions", ["employee_id"], unique=False)
    op.create_index(
        "ix_corrective_actions_violation_category_id",
        "corrective_actions",
        ["violation_category_id"],
        unique=False,
    )
    op.create_index("ix_corrective_actions_issued_by_id", "corrective_actions", ["issued_by_id"], unique=False)
    op.create_index("ix_corrective_actions_violation_date", "corrective_actions", ["violation_date"], unique=False)
    op.create_index("ix_corrective_actions_status", "corrective_actions", ["status"], unique=False)
    op.create_index(
        "ix_corrective_actions_employee_window",
        "corrective_actions",
        ["employee_id", "violation_date", "status"],
        unique=False,
    )

    op.create_table(
        "corrective_action_signatures",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("corrective_action_id", sa.Integer(), nullable=False),
        sa.Column("signer_role", signer_role, nullable=False),
        sa.Column("signer_id", sa.Integer(), nullable=False),
        sa.Column("signature_data", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.String(length=128), nullable=True),
        sa.Column("device_info", sa.String(length=1024), nullable=True),
        sa.Column(
            "signed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["corrective_action_id"], ["corrective_actions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["signer_id"], ["users.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint(
            "corrective_action_id",
            "signer_role",
            "signer_id",
            name="uq_corrective_action_signatures_action_role_signer",
        ),
    )
    op.create_index(
        "ix_corrective_action_signatures_corrective_action_id",
        "corrective_action_signatures",
        ["corrective_action_id"],
        unique=False,
    )

    op.create_table(
        "point_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("approved_by_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by_id"], ["users.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_point_adjustments_employee_id", "point_adjustments", ["employee_id"], unique=False)
    op.create_index("ix_point_adjustments_effective_date", "point_adjustments", ["effective_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_point_adjustments_effective_date", table_name="point_adjustments")
    op.drop_index("ix_point_adjustments_employee_id", table_name="point_adjustments")
    op.drop_table("point_adjustments")
    op.drop_index(
        "ix_corrective_action_signatures_corrective_action_id",
        table_name="corrective_action_signatures",
    )
    op.drop_table("corrective_action_signatures")
    op.drop_index("ix_corrective_actions_employee_window", table_name="corrective_actions")
    op.drop_index("ix_corrective_actions_status", table_name="corrective_actions")
    op.drop_index("ix_corrective_actions_violation_date", table_name="corrective_actions")
    op.drop_index("ix_corrective_actions_issued_by_id", table_name="corrective_actions")
    op.drop_index("ix_corrective_actions_violation_category_id", table_name="corrective_actions")
    op.drop_index("ix_corrective_actions_employee_id", table_name="corrective_actions")
    op.drop_table("corrective_actions")
    op.drop_index("ix_violation_categories_severity_level", table_name="violation_categories")
    op.drop_table("violation_categories")

    bind = op.get_bind()
    signer_role.drop(bind, checkfirst=True)
    corrective_action_status.drop(bind, checkfirst=True)
    discipline_level.drop(bind, checkfirst=True)
    severity_level.drop(bind, checkfirst=True)

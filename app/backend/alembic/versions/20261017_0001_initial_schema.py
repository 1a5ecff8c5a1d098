"""initial schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


salary_type = postgresql.ENUM("hourly", "daily", "monthly", name="salary_type", create_type=False)
project_status = postgresql.ENUM(
    "todo", "active", "pending", "on_hold", "completed", "cancelled", name="project_status", create_type=False
)
task_status = postgresql.ENUM("todo", "in_progress", "done", "overdue", name="task_status", create_type=False)
team_role = postgresql.ENUM("lead", "member", name="team_role", create_type=False)


def upgrade() -> None:
    salary_type.create(op.get_bind(), checkfirst=True)
    project_status.create(op.get_bind(), checkfirst=True)
    task_status.create(op.get_bind(), checkfirst=True)
    team_role.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "employees",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("employee_code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("salary_type", salary_type, nullable=False),
        sa.Column("salary_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("salary_amount >= 0", name="ck_employees_salary_amount_non_negative"),
        sa.CheckConstraint("hourly_rate >= 0", name="ck_employees_hourly_rate_non_negative"),
    )
    op.create_index("ix_employees_active_created", "employees", ["is_active", "created_at"])

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("status", project_status, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_projects_status", "projects", ["status"])

    op.create_table(
        "project_team_memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("role", team_role, nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project_id", "employee_id", name="uq_project_team_memberships_project_employee"),
    )
    op.create_index(
        "ix_project_team_memberships_employee_id",
        "project_team_memberships",
        ["employee_id"],
    )

    op.create_table(
        "tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", task_status, nullable=False),
        sa.Column("assigned_to", postgresql.UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])

    op.create_table(
        "task_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("task_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tasks.id"), nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("task_id", "employee_id", name="uq_task_assignments_task_employee"),
    )
    op.create_index("ix_task_assignments_employee_id", "task_assignments", ["employee_id"])

    op.create_table(
        "time_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("task_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tasks.id"), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(length=2000), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("duration_minutes >= 0", name="ck_time_entries_duration_non_negative"),
        sa.CheckConstraint("cost >= 0", name="ck_time_entries_cost_non_negative"),
        sa.CheckConstraint(
            "project_id IS NOT NULL OR task_id IS NOT NULL",
            name="ck_time_entries_project_or_task",
        ),
    )
    op.create_index("ix_time_entries_employee_id", "time_entries", ["employee_id"])
    op.create_index("ix_time_entries_project_id", "time_entries", ["project_id"])
    op.create_index("ix_time_entries_duration", "time_entries", ["duration_minutes"])


def downgrade() -> None:
    op.drop_index("ix_time_entries_duration", table_name="time_entries")
    op.drop_index("ix_time_entries_project_id", table_name="time_entries")
    op.drop_index("ix_time_entries_employee_id", table_name="time_entries")
    op.drop_table("time_entries")

    op.drop_index("ix_task_assignments_employee_id", table_name="task_assignments")
    op.drop_table("task_assignments")

    op.drop_index("ix_tasks_project_id", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_project_team_memberships_employee_id", table_name="project_team_memberships")
    op.drop_table("project_team_memberships")

    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_employees_active_created", table_name="employees")
    op.drop_table("employees")

    team_role.drop(op.get_bind(), checkfirst=True)
    task_status.drop(op.get_bind(), checkfirst=True)
    project_status.drop(op.get_bind(), checkfirst=True)
    salary_type.drop(op.get_bind(), checkfirst=True)

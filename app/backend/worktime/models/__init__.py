"""ORM model package."""

from worktime.models.entities import (
    AssignmentRepairPolicy,
    Employee,
    Project,
    ProjectStatus,
    SalaryType,
    Task,
    TaskAssignment,
    TaskStatus,
    TeamMembership,
    TeamRole,
    TimeEntry,
)

__all__ = [
    "AssignmentRepairPolicy",
    "Employee",
    "Project",
    "ProjectStatus",
    "SalaryType",
    "Task",
    "TaskAssignment",
    "TaskStatus",
    "TeamMembership",
    "TeamRole",
    "TimeEntry",
]

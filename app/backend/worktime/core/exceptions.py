"""
Typed exception hierarchy for the billing and staffing engine.

    EngineError (base)
    |
    +-- EngineValidationError          row-local; the row is skipped and logged
    |   +-- InvalidSalaryError
    |   +-- UnsupportedSalaryTypeError
    |   +-- InvalidDurationError
    |   +-- MissingRateError
    |
    +-- PersistenceError               storage failure; the unit rolls back
    |   +-- ScopeLockedError
    |
    +-- UnresolvedViolationError       returned in pass results, never raised

Every class carries a machine-readable ``code`` and structured attributes so
callers catch by type and report by code instead of parsing messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from worktime.services.staffing_checker import Violation


class EngineError(Exception):
    """Base exception for all engine errors."""

    code: str = "ENGINE_ERROR"


class EngineValidationError(EngineError):
    """A single input was rejected by a pure rule."""

    code: str = "VALIDATION_ERROR"


class InvalidSalaryError(EngineValidationError):
    code: str = "INVALID_SALARY"

    def __init__(self, salary_amount: object):
        self.salary_amount = salary_amount
        super().__init__(f"Salary amount must be a finite positive number, got {salary_amount!r}.")


class UnsupportedSalaryTypeError(EngineValidationError):
    code: str = "UNSUPPORTED_SALARY_TYPE"

    def __init__(self, salary_type: object):
        self.salary_type = salary_type
        super().__init__(f"Unsupported salary type {salary_type!r}.")


class InvalidDurationError(EngineValidationError):
    code: str = "INVALID_DURATION"

    def __init__(self, duration: object, reason: str = "duration must be greater or equal zero"):
        self.duration = duration
        self.reason = reason
        super().__init__(f"Invalid duration {duration!r}: {reason}.")


class MissingRateError(EngineValidationError):
    """Raised when pricing is attempted before a positive rate was derived."""

    code: str = "MISSING_RATE"

    def __init__(self, hourly_rate: object):
        self.hourly_rate = hourly_rate
        super().__init__(f"Hourly rate must be positive before pricing, got {hourly_rate!r}.")


class PersistenceError(EngineError):
    """Storage collaborator failure surfaced to the current unit of work."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class ScopeLockedError(PersistenceError):
    """Another maintenance pass holds the advisory lock for this unit."""

    code: str = "SCOPE_LOCKED"

    def __init__(self, unit: str):
        self.unit = unit
        super().__init__("acquire_scope_lock", f"{unit} is locked by another maintenance pass")


class UnresolvedViolationError(EngineError):
    """A staffing violation that survived repair.

    Instances are collected in maintenance results so callers can alert
    without the pass crashing.
    """

    code: str = "UNRESOLVED_VIOLATION"

    def __init__(self, violation: Violation, reason: str):
        self.violation = violation
        self.reason = reason
        super().__init__(f"{violation.kind.value}: {reason}")

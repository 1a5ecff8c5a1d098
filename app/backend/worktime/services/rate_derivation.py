"""Hourly rate derivation from employee salary records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from uuid import UUID

from worktime.core.exceptions import InvalidSalaryError, UnsupportedSalaryTypeError
from worktime.models.entities import Employee, SalaryType
from worktime.repositories.engine_repository import EngineRepository
from worktime.services.policy import EnginePolicy

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")


@dataclass(slots=True)
class RateChange:
    employee_id: UUID
    previous_rate: Decimal
    new_rate: Decimal


def _coerce_salary_type(salary_type: SalaryType | str) -> SalaryType:
    if isinstance(salary_type, SalaryType):
        return salary_type
    try:
        return SalaryType(str(salary_type).strip().lower())
    except ValueError as exc:
        raise UnsupportedSalaryTypeError(salary_type) from exc


def _coerce_salary_amount(salary_amount: Decimal | int | float | str) -> Decimal:
    """Parse a salary and round it to cents, the precision it is stored at."""

    if isinstance(salary_amount, bool) or salary_amount is None:
        raise InvalidSalaryError(salary_amount)
    try:
        amount = salary_amount if isinstance(salary_amount, Decimal) else Decimal(str(salary_amount))
        if not amount.is_finite():
            raise InvalidSalaryError(salary_amount)
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidSalaryError(salary_amount) from exc
    if amount <= ZERO:
        raise InvalidSalaryError(salary_amount)
    return amount


def round_up_to_unit(value: Decimal, unit: Decimal) -> Decimal:
    """Round ``value`` up to the next multiple of ``unit`` (never down)."""

    return (value / unit).to_integral_value(rounding=ROUND_CEILING) * unit


def derive_hourly_rate(
    salary_amount: Decimal | int | float | str,
    salary_type: SalaryType | str,
    *,
    policy: EnginePolicy | None = None,
) -> Decimal:
    """Convert a salary into the hourly billing rate.

    Hourly salaries already are a rate and pass through unchanged. Daily and
    monthly salaries are spread over the standard hours and rounded up to the
    policy's rounding unit, so the rate never falls below the salary floor.
    """

    policy = policy or EnginePolicy()
    kind = _coerce_salary_type(salary_type)
    amount = _coerce_salary_amount(salary_amount)

    if kind is SalaryType.HOURLY:
        return amount
    if kind is SalaryType.DAILY:
        raw = amount / Decimal(policy.hours_per_day)
    else:
        raw = amount / Decimal(policy.standard_monthly_hours)
    return round_up_to_unit(raw, policy.rate_rounding_unit)


class RateDerivationService:
    """Keeps ``Employee.hourly_rate`` a function of the salary fields."""

    def __init__(self, repo: EngineRepository, policy: EnginePolicy) -> None:
        self.repo = repo
        self.policy = policy

    def refresh_employee_rate(self, employee: Employee) -> RateChange | None:
        """Re-derive the rate and write it only when it drifted."""

        new_rate = derive_hourly_rate(employee.salary_amount, employee.salary_type, policy=self.policy)
        previous = employee.hourly_rate if employee.hourly_rate is not None else ZERO
        if previous == new_rate:
            return None
        self.repo.write_employee_rate(employee, new_rate)
        logger.info(
            "employee_rate_updated",
            extra={"employee_id": employee.id, "reason": f"{previous} -> {new_rate}"},
        )
        return RateChange(employee_id=employee.id, previous_rate=previous, new_rate=new_rate)

    def apply_salary_change(
        self,
        employee: Employee,
        *,
        salary_type: SalaryType | str,
        salary_amount: Decimal | int | float | str,
    ) -> RateChange:
        """Persist new salary fields and replace the rate derived from them.

        Inputs are validated before anything is written. The caller owns the
        transaction.
        """

        kind = _coerce_salary_type(salary_type)
        amount = _coerce_salary_amount(salary_amount)
        new_rate = derive_hourly_rate(amount, kind, policy=self.policy)

        previous = employee.hourly_rate if employee.hourly_rate is not None else ZERO
        self.repo.write_employee_salary(employee, salary_type=kind, salary_amount=amount)
        self.repo.write_employee_rate(employee, new_rate)
        return RateChange(employee_id=employee.id, previous_rate=previous, new_rate=new_rate)

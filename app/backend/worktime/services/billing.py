"""Time-entry billing: billable duration and monetary cost."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from uuid import UUID

from worktime.core.exceptions import EngineValidationError, InvalidDurationError, MissingRateError
from worktime.models.entities import TimeEntry
from worktime.repositories.engine_repository import EngineRepository, TimeEntryFilter
from worktime.services.policy import EnginePolicy

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
MINUTES_PER_HOUR = Decimal("60")
MIN_BILLABLE_MINUTES = 30


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2, rounding=ROUND_HALF_UP)


@dataclass(slots=True)
class SkippedRow:
    entity: str
    entity_id: UUID
    code: str
    reason: str


@dataclass(slots=True)
class CostChange:
    time_entry_id: UUID
    previous_cost: Decimal
    new_cost: Decimal
    previous_duration: int
    new_duration: int


@dataclass(slots=True)
class CostRecomputeResult:
    examined: int = 0
    updated: list[CostChange] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)


def _validate_duration(duration_minutes: int) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidDurationError(duration_minutes, "duration must be a whole number of minutes")
    if duration_minutes < 0:
        raise InvalidDurationError(duration_minutes)
    return duration_minutes


def _validate_rate(hourly_rate: Decimal | int | str | None) -> Decimal:
    if hourly_rate is None or isinstance(hourly_rate, bool):
        raise MissingRateError(hourly_rate)
    try:
        rate = hourly_rate if isinstance(hourly_rate, Decimal) else Decimal(str(hourly_rate))
    except (InvalidOperation, ValueError) as exc:
        raise MissingRateError(hourly_rate) from exc
    if not rate.is_finite() or rate <= ZERO:
        raise MissingRateError(hourly_rate)
    return rate


def billed_minutes(duration_minutes: int, *, min_billable_minutes: int = MIN_BILLABLE_MINUTES) -> int:
    """Minutes actually charged: the logged duration, floored at the minimum."""

    return max(_validate_duration(duration_minutes), min_billable_minutes)


def compute_cost(
    duration_minutes: int,
    hourly_rate: Decimal | int | str | None,
    *,
    min_billable_minutes: int = MIN_BILLABLE_MINUTES,
) -> Decimal:
    """Price a logged interval at ``hourly_rate``, rounded half-up to cents."""

    minutes = billed_minutes(duration_minutes, min_billable_minutes=min_billable_minutes)
    rate = _validate_rate(hourly_rate)
    return _q2(Decimal(minutes) * rate / MINUTES_PER_HOUR)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def duration_minutes_between(start_time: datetime, end_time: datetime) -> int:
    """Whole minutes between two instants, rounded to the nearest minute."""

    delta = _as_utc(end_time) - _as_utc(start_time)
    if delta < timedelta(0):
        raise InvalidDurationError(delta, "end_time precedes start_time")
    minutes, remainder = divmod(delta, timedelta(minutes=1))
    if remainder >= timedelta(seconds=30):
        minutes += 1
    return minutes


class BillingCalculator:
    """Applies the billing rules to stored time entries."""

    def __init__(self, repo: EngineRepository, policy: EnginePolicy) -> None:
        self.repo = repo
        self.policy = policy

    def expected_pricing(self, entry: TimeEntry, hourly_rate: Decimal | None) -> tuple[int, Decimal]:
        if entry.end_time is None:
            # Running timer: nothing is billable yet.
            return 0, ZERO
        duration = duration_minutes_between(entry.start_time, entry.end_time)
        cost = compute_cost(duration, hourly_rate, min_billable_minutes=self.policy.min_billable_minutes)
        return duration, cost

    def price_time_entry(self, entry: TimeEntry, hourly_rate: Decimal | None) -> CostChange | None:
        """Bring one entry's duration and cost in line; write only on drift."""

        duration, cost = self.expected_pricing(entry, hourly_rate)
        previous_cost = entry.cost if entry.cost is not None else ZERO
        previous_duration = entry.duration_minutes if entry.duration_minutes is not None else 0
        if previous_cost == cost and previous_duration == duration:
            return None
        self.repo.write_time_entry_cost(
            entry,
            cost,
            duration_minutes=duration if previous_duration != duration else None,
        )
        return CostChange(
            time_entry_id=entry.id,
            previous_cost=previous_cost,
            new_cost=cost,
            previous_duration=previous_duration,
            new_duration=duration,
        )

    def recompute_costs(self, entry_filter: TimeEntryFilter) -> CostRecomputeResult:
        """Re-price every stale entry in the filter.

        Each row write is independent and idempotent, so an interrupted sweep
        is finished by simply running it again.
        """

        result = CostRecomputeResult()
        entries = self.repo.read_time_entries_needing_recompute(entry_filter)
        employee_ids = {entry.employee_id for entry in entries}
        rates = {employee.id: employee.hourly_rate for employee in self.repo.list_employees(employee_ids)}

        for entry in entries:
            result.examined += 1
            try:
                change = self.price_time_entry(entry, rates.get(entry.employee_id))
            except EngineValidationError as exc:
                logger.warning(
                    "time_entry_skipped",
                    extra={"time_entry_id": entry.id, "code": exc.code, "reason": str(exc)},
                )
                result.skipped.append(
                    SkippedRow(entity="time_entry", entity_id=entry.id, code=exc.code, reason=str(exc))
                )
                continue
            if change is not None:
                result.updated.append(change)
        return result

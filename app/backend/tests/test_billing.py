from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

import pytest
from sqlalchemy.orm import Session

from worktime.core.exceptions import InvalidDurationError, MissingRateError
from worktime.models.entities import TimeEntry
from worktime.repositories.engine_repository import EngineRepository, TimeEntryFilter
from worktime.services.billing import (
    BillingCalculator,
    billed_minutes,
    compute_cost,
    duration_minutes_between,
)
from worktime.services.policy import EnginePolicy

RATE = Decimal("790")


def test_short_entry_scenario() -> None:
    assert billed_minutes(16) == 30
    assert compute_cost(16, RATE) == Decimal("395.00")


@pytest.mark.parametrize("rate", [Decimal("10"), Decimal("87.55"), RATE, Decimal("1234.56")])
def test_entries_under_minimum_cost_the_same_as_minimum(rate: Decimal) -> None:
    floor = compute_cost(30, rate)

    for minutes in range(0, 30):
        assert compute_cost(minutes, rate) == floor


@pytest.mark.parametrize("minutes", [30, 31, 45, 59, 61, 90, 125, 480, 1439])
@pytest.mark.parametrize("rate", [Decimal("10"), Decimal("87.55"), RATE])
def test_entries_from_minimum_are_billed_exactly(minutes: int, rate: Decimal) -> None:
    expected = (Decimal(minutes) * rate / Decimal(60)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    assert compute_cost(minutes, rate) == expected


def test_compute_cost_is_stable_across_calls() -> None:
    assert compute_cost(47, Decimal("87.55")) == compute_cost(47, Decimal("87.55"))


def test_minimum_is_configurable() -> None:
    assert compute_cost(10, RATE, min_billable_minutes=15) == Decimal("197.50")
    assert compute_cost(10, RATE, min_billable_minutes=0) == Decimal("131.67")


@pytest.mark.parametrize("minutes", [-1, True, 1.5, None])
def test_invalid_duration_is_rejected(minutes: object) -> None:
    with pytest.raises(InvalidDurationError):
        compute_cost(minutes, RATE)


@pytest.mark.parametrize("rate", [None, 0, Decimal("-10"), "abc"])
def test_missing_rate_is_rejected(rate: object) -> None:
    with pytest.raises(MissingRateError):
        compute_cost(45, rate)


def test_duration_rounds_to_nearest_minute() -> None:
    start = datetime(2026, 3, 2, 9, 0, 0)

    assert duration_minutes_between(start, start + timedelta(minutes=16, seconds=29)) == 16
    assert duration_minutes_between(start, start + timedelta(minutes=16, seconds=30)) == 17
    assert duration_minutes_between(start, start) == 0


def test_duration_treats_naive_timestamps_as_utc() -> None:
    start = datetime(2026, 3, 2, 9, 0, 0)
    end = datetime(2026, 3, 2, 11, 0, 0, tzinfo=timezone(timedelta(hours=1)))

    assert duration_minutes_between(start, end) == 60


def test_duration_rejects_end_before_start() -> None:
    start = datetime(2026, 3, 2, 9, 0, 0)

    with pytest.raises(InvalidDurationError):
        duration_minutes_between(start, start - timedelta(minutes=1))


def test_negative_duration_cannot_be_stored() -> None:
    with pytest.raises(InvalidDurationError):
        TimeEntry(duration_minutes=-5)


def test_recompute_rewrites_stale_entries_once(db_session: Session, factory) -> None:
    employee = factory.employee()
    project = factory.project()
    short = factory.time_entry(employee, project=project, minutes=16, cost="0.00")
    exact = factory.time_entry(employee, project=project, minutes=90)
    drifted = factory.time_entry(employee, project=project, minutes=45, duration_minutes=40, cost="1.00")
    calculator = BillingCalculator(EngineRepository(db_session), EnginePolicy())

    first = calculator.recompute_costs(TimeEntryFilter())
    db_session.commit()
    second = calculator.recompute_costs(TimeEntryFilter())

    assert first.examined == 3
    assert {change.time_entry_id for change in first.updated} == {short.id, drifted.id}
    assert second.updated == []
    db_session.refresh(short)
    db_session.refresh(drifted)
    db_session.refresh(exact)
    assert short.cost == Decimal("395.00")
    assert short.duration_minutes == 16
    assert drifted.duration_minutes == 45
    assert drifted.cost == Decimal("592.50")
    assert exact.cost == Decimal("1185.00")


def test_running_and_inactive_entries_are_not_priced(db_session: Session, factory) -> None:
    employee = factory.employee()
    project = factory.project()
    factory.time_entry(employee, project=project, running=True)
    factory.time_entry(employee, project=project, minutes=16, cost="0.00", is_active=False)
    calculator = BillingCalculator(EngineRepository(db_session), EnginePolicy())

    result = calculator.recompute_costs(TimeEntryFilter())

    assert result.examined == 0
    assert result.updated == []


def test_bad_rows_are_skipped_without_aborting(db_session: Session, factory) -> None:
    priced = factory.employee()
    unpriced = factory.employee(salary_amount="0", hourly_rate="0")
    project = factory.project()
    start = datetime(2026, 3, 2, 9, 0, 0)
    backwards = factory.time_entry(
        priced, project=project, start_time=start, end_time=start - timedelta(minutes=5), cost="0.00"
    )
    no_rate = factory.time_entry(unpriced, project=project, minutes=60, cost="0.00")
    good = factory.time_entry(priced, project=project, minutes=16, cost="0.00")
    calculator = BillingCalculator(EngineRepository(db_session), EnginePolicy())

    result = calculator.recompute_costs(TimeEntryFilter())

    assert [change.time_entry_id for change in result.updated] == [good.id]
    skipped = {row.entity_id: row.code for row in result.skipped}
    assert skipped == {backwards.id: "INVALID_DURATION", no_rate.id: "MISSING_RATE"}


def test_filter_limits_sweep_to_short_entries(db_session: Session, factory) -> None:
    employee = factory.employee()
    project = factory.project()
    factory.time_entry(employee, project=project, minutes=16, cost="0.00")
    factory.time_entry(employee, project=project, minutes=90, cost="0.00")
    calculator = BillingCalculator(EngineRepository(db_session), EnginePolicy())

    result = calculator.recompute_costs(TimeEntryFilter(under_minutes=30))

    assert result.examined == 1
    assert result.updated[0].new_cost == Decimal("395.00")

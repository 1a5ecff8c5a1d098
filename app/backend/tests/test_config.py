from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from worktime.core.config import Settings
from worktime.models.entities import AssignmentRepairPolicy, ProjectStatus
from worktime.services.policy import EnginePolicy


def test_defaults_match_engine_policy() -> None:
    policy = EnginePolicy.from_settings(Settings(_env_file=None))

    assert policy == EnginePolicy()
    assert policy.standard_monthly_hours == 192
    assert policy.assignment_repair_policy is None


def test_environment_values_are_parsed(monkeypatch) -> None:
    monkeypatch.setenv("STAFFING_EXEMPT_STATUSES", "todo, on_hold")
    monkeypatch.setenv("ASSIGNMENT_REPAIR_POLICY", "reassign_task")
    monkeypatch.setenv("RATE_ROUNDING_UNIT", "5")
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.test,http://b.test")

    settings = Settings(_env_file=None)
    policy = EnginePolicy.from_settings(settings)

    assert settings.allowed_origins == ["http://a.test", "http://b.test"]
    assert policy.staffing_exempt_statuses == frozenset({ProjectStatus.TODO, ProjectStatus.ON_HOLD})
    assert policy.assignment_repair_policy is AssignmentRepairPolicy.REASSIGN_TASK
    assert policy.rate_rounding_unit == Decimal("5")
    assert not policy.requires_staffing(ProjectStatus.ON_HOLD)
    assert policy.requires_staffing(ProjectStatus.CANCELLED)


def test_blank_repair_policy_means_unset(monkeypatch) -> None:
    monkeypatch.setenv("ASSIGNMENT_REPAIR_POLICY", "")

    assert Settings(_env_file=None).assignment_repair_policy is None


def test_team_bounds_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, min_team_size=4, max_team_size=3)

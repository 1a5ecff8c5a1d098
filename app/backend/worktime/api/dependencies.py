"""Shared FastAPI dependencies for engine endpoints."""

from worktime.core.config import get_settings
from worktime.services.policy import EnginePolicy


def get_engine_policy() -> EnginePolicy:
    """Policy constants built from the cached runtime settings."""

    return EnginePolicy.from_settings(get_settings())

"""Declarative base for ORM records."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all engine ORM records."""

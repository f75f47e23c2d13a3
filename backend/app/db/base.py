"""SQLAlchemy Declarative Base — shared base class for the PasaTanda ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all PasaTanda ORM models."""
    pass

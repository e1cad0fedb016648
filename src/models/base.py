"""
SQLAlchemy 2.0 async DeclarativeBase for ONPOST Analytics.

Only coordination state lives in the database; market data stays in the
forum's extended data.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ONPOST Analytics database models."""
    pass

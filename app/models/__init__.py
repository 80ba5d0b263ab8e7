"""SQLAlchemy declarative base and the models the BFF reads.

The BFF owns no schema beyond the user store: credentials plus the phone
number that scopes a user to a company on the flow manager.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


from .user import User


__all__ = [
    "Base",
    "User",
]

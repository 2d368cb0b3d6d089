"""
Repository Package.

Data access layer for the decision audit tables. Repositories
wrap SQLAlchemy errors in repository exceptions.
"""

from storage.repositories.base import BaseRepository
from storage.repositories.decisions import DecisionAuditRepository
from storage.repositories.exceptions import (
    ConnectionError,
    IntegrityError,
    QueryError,
    RepositoryException,
)


__all__ = [
    "BaseRepository",
    "DecisionAuditRepository",
    "RepositoryException",
    "ConnectionError",
    "IntegrityError",
    "QueryError",
]

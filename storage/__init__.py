"""
Storage Package.

This package manages durable storage of trust engine decisions.
Every decision is written for audit.

Modules:
- database: Async engine, sessions, explicit table creation
- models/: ORM models for the audit tables
- repositories/: Data access layer
- serialization: Typed records to JSON payloads and back
- stores: Store adapters used by the engine
"""

from storage.database import create_engine, create_session_factory, create_tables, drop_tables
from storage.stores import InMemoryStore, SqlAlchemyStore


__all__ = [
    "create_engine",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "InMemoryStore",
    "SqlAlchemyStore",
]

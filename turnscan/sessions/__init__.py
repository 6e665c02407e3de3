"""Session and pass records, their status rules and their persistence."""

from turnscan.sessions.models import (
    DATABASE_VERSION,
    Pass,
    Session,
    SessionDatabase,
    SessionImage,
    SessionStatus,
    coerce_timestamp,
)
from turnscan.sessions.persistence import JsonFileAdapter, MemoryAdapter, PersistenceAdapter
from turnscan.sessions.state import SessionStateMachine
from turnscan.sessions.store import SessionStore

__all__ = [
    "DATABASE_VERSION",
    "Pass",
    "Session",
    "SessionDatabase",
    "SessionImage",
    "SessionStatus",
    "coerce_timestamp",
    "JsonFileAdapter",
    "MemoryAdapter",
    "PersistenceAdapter",
    "SessionStateMachine",
    "SessionStore",
]

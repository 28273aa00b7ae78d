"""Storage layer for usage accounting, generation records and traces."""

from dslgen.storage.database import create_session_factory, get_engine, get_session, init_db, session_scope
from dslgen.storage.models import Base, UsageEvent, UsageTotal, Generation
from dslgen.storage.artifacts import ArtifactStore

__all__ = [
    "create_session_factory",
    "get_engine",
    "get_session",
    "init_db",
    "session_scope",
    "Base",
    "UsageEvent",
    "UsageTotal",
    "Generation",
    "ArtifactStore",
]

"""Database models and storage layer."""

from .database import (
    Base,
    session_scope,
    get_database_engine,
    configure_database,
    reset_database_engine,
    database_is_reachable,
    create_tables,
    drop_tables,
)
from .models import AppModel, CaseModel, UserModel

__all__ = [
    "Base",
    "session_scope",
    "get_database_engine",
    "configure_database",
    "reset_database_engine",
    "database_is_reachable",
    "create_tables",
    "drop_tables",
    "AppModel",
    "CaseModel",
    "UserModel",
]

"""Persistent storage: SQLAlchemy engine helpers and the async storage gateway."""

from src.db.gateway import (
    ACADEMIC_STATE,
    HISTORY,
    PROFILES,
    QUESTIONS,
    SqlStorageGateway,
    StorageError,
    StorageGateway,
)

__all__ = [
    "ACADEMIC_STATE",
    "HISTORY",
    "PROFILES",
    "QUESTIONS",
    "SqlStorageGateway",
    "StorageError",
    "StorageGateway",
]

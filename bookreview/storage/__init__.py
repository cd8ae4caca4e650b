"""Storage backends for jobs and review records."""

from .base import JobStore, ReviewStore
from .memory import InMemoryDatabase
from .sqlite import SqliteJobStore

__all__ = ["JobStore", "ReviewStore", "InMemoryDatabase", "SqliteJobStore"]

"""
Data persistence layer: SQLite via SQLAlchemy plus filesystem image storage
"""

from diffit.storage.blob_store import FileBlobStore
from diffit.storage.database import Database, get_database
from diffit.storage.models import (
    BaselineModel,
    BuildModel,
    BuildStatus,
    ProjectModel,
    ReviewStatus,
    SnapshotModel,
    SnapshotStatus,
)

__all__ = [
    "Database",
    "get_database",
    "FileBlobStore",
    "ProjectModel",
    "BuildModel",
    "SnapshotModel",
    "BaselineModel",
    "BuildStatus",
    "SnapshotStatus",
    "ReviewStatus",
]

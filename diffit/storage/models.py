"""
SQLAlchemy database models
"""

import json
import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    """Return current UTC time"""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a primary key"""
    return str(uuid.uuid4())


def make_variant_key(
    project_id: str,
    name: str,
    branch: str,
    browser: str | None,
    viewport: str | None,
) -> str:
    """
    Encode a baseline variant key as a single comparable string.

    JSON keeps ``None`` (null) distinct from an empty string, so an unset
    browser or viewport is its own key rather than a wildcard.
    """
    return json.dumps([project_id, name, branch, browser, viewport], separators=(",", ":"))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class BuildStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SnapshotStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReviewStatus(str, Enum):
    UNREVIEWED = "unreviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProjectModel(Base):
    """
    A visual testing project

    Owns builds and baselines; deleting a project removes both.
    """

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    repository_url = Column(String(500), nullable=True)
    default_branch = Column(String(100), nullable=False, default="main")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    builds = relationship("BuildModel", back_populates="project", cascade="all, delete-orphan")
    baselines = relationship(
        "BaselineModel", back_populates="project", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "repository_url": self.repository_url,
            "default_branch": self.default_branch,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class BuildModel(Base):
    """
    One CI run of a project

    Snapshot counters are derived; see BuildRepository.update_stats.
    """

    __tablename__ = "builds"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    build_number = Column(Integer, nullable=False)
    branch = Column(String(255), nullable=False)
    commit_sha = Column(String(40), nullable=True)
    commit_message = Column(Text, nullable=True)
    pull_request_number = Column(Integer, nullable=True)
    status = Column(String(50), nullable=False, default=BuildStatus.PENDING.value)
    total_snapshots = Column(Integer, nullable=False, default=0)
    changed_snapshots = Column(Integer, nullable=False, default=0)
    approved_snapshots = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)

    # Relationships
    project = relationship("ProjectModel", back_populates="builds")
    snapshots = relationship(
        "SnapshotModel", back_populates="build", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("project_id", "build_number", name="uq_builds_project_number"),
        Index("idx_builds_project_id", "project_id"),
        Index("idx_builds_status", "status"),
        Index("idx_builds_branch", "branch"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "build_number": self.build_number,
            "branch": self.branch,
            "commit_sha": self.commit_sha,
            "commit_message": self.commit_message,
            "pull_request_number": self.pull_request_number,
            "status": self.status,
            "total_snapshots": self.total_snapshots,
            "changed_snapshots": self.changed_snapshots,
            "approved_snapshots": self.approved_snapshots,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "finished_at": _iso(self.finished_at),
        }


class BaselineModel(Base):
    """
    The accepted reference image for a variant key

    One row per (project, name, branch, browser, viewport); writes go
    through BaselineRepository.upsert.
    """

    __tablename__ = "baselines"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(500), nullable=False)
    branch = Column(String(255), nullable=False)
    browser = Column(String(50), nullable=True)
    viewport = Column(String(50), nullable=True)
    variant_key = Column(Text, nullable=False, unique=True)
    image_path = Column(String(500), nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    source_snapshot_id = Column(String(36), nullable=True)  # Back-reference only
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    project = relationship("ProjectModel", back_populates="baselines")

    __table_args__ = (
        Index("idx_baselines_project_id", "project_id"),
        Index("idx_baselines_branch", "branch"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "branch": self.branch,
            "browser": self.browser,
            "viewport": self.viewport,
            "image_path": self.image_path,
            "width": self.width,
            "height": self.height,
            "source_snapshot_id": self.source_snapshot_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SnapshotModel(Base):
    """
    One captured image within a build

    Processing status and review status move independently.
    """

    __tablename__ = "snapshots"

    id = Column(String(36), primary_key=True, default=new_id)
    build_id = Column(String(36), ForeignKey("builds.id", ondelete="CASCADE"), nullable=False)
    baseline_id = Column(
        String(36), ForeignKey("baselines.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(500), nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    browser = Column(String(50), nullable=True)
    viewport = Column(String(50), nullable=True)
    base_image_path = Column(String(500), nullable=True)
    comparison_image_path = Column(String(500), nullable=True)
    diff_image_path = Column(String(500), nullable=True)
    diff_percentage = Column(Float, nullable=True)
    status = Column(String(50), nullable=False, default=SnapshotStatus.PENDING.value)
    review_status = Column(String(50), nullable=False, default=ReviewStatus.UNREVIEWED.value)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    build = relationship("BuildModel", back_populates="snapshots")

    __table_args__ = (
        Index("idx_snapshots_build_id", "build_id"),
        Index("idx_snapshots_status", "status"),
        Index("idx_snapshots_review_status", "review_status"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "build_id": self.build_id,
            "baseline_id": self.baseline_id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "browser": self.browser,
            "viewport": self.viewport,
            "base_image_path": self.base_image_path,
            "comparison_image_path": self.comparison_image_path,
            "diff_image_path": self.diff_image_path,
            "diff_percentage": self.diff_percentage,
            "status": self.status,
            "review_status": self.review_status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

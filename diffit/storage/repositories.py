"""
Repositories for projects, builds, snapshots and baselines

Each repository wraps a SQLAlchemy session and exposes only the named
queries the engine needs. Mutations are flushed immediately; committing is
left to the caller's session scope.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from diffit.core.exceptions import BaselineLookupError, ResourceNotFoundError
from diffit.storage.models import (
    BaselineModel,
    BuildModel,
    ProjectModel,
    ReviewStatus,
    SnapshotModel,
    make_variant_key,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


@dataclass(frozen=True)
class PaginationParams:
    """Normalized page/per_page pair"""

    page: int = 1
    per_page: int = DEFAULT_PER_PAGE

    @classmethod
    def create(cls, page: int | None = None, per_page: int | None = None) -> "PaginationParams":
        page = page if page and page >= 1 else 1
        per_page = per_page if per_page and per_page >= 1 else DEFAULT_PER_PAGE
        return cls(page=page, per_page=min(per_page, MAX_PER_PAGE))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


@dataclass
class Page:
    """One page of a listing"""

    items: list[Any] = field(default_factory=list)
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page) if self.per_page else 0

    def to_dict(self) -> dict:
        """Convert to dictionary, serializing models that provide to_dict"""
        return {
            "data": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.items],
            "page": self.page,
            "per_page": self.per_page,
            "total": self.total,
            "total_pages": self.total_pages,
        }


def _paginate(session: Session, query, pagination: PaginationParams | None) -> Page:
    pagination = pagination or PaginationParams()
    total = session.execute(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).scalar_one()
    items = session.execute(query.offset(pagination.offset).limit(pagination.limit)).scalars().all()
    return Page(items=list(items), page=pagination.page, per_page=pagination.per_page, total=total)


class ProjectRepository:
    """Project CRUD"""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        name: str,
        slug: str,
        default_branch: str,
        repository_url: str | None = None,
    ) -> ProjectModel:
        project = ProjectModel(
            name=name,
            slug=slug,
            default_branch=default_branch,
            repository_url=repository_url,
        )
        self.session.add(project)
        self.session.flush()
        return project

    def get(self, project_id: str) -> ProjectModel | None:
        return self.session.get(ProjectModel, project_id)

    def require(self, project_id: str) -> ProjectModel:
        project = self.get(project_id)
        if project is None:
            raise ResourceNotFoundError("Project", project_id)
        return project

    def get_by_slug(self, slug: str) -> ProjectModel | None:
        return self.session.execute(
            select(ProjectModel).where(ProjectModel.slug == slug)
        ).scalar_one_or_none()

    def list(self, pagination: PaginationParams | None = None) -> Page:
        query = select(ProjectModel).order_by(ProjectModel.created_at.desc())
        return _paginate(self.session, query, pagination)

    def update(self, project: ProjectModel, **changes) -> ProjectModel:
        for key, value in changes.items():
            if value is not None:
                setattr(project, key, value)
        self.session.flush()
        return project

    def delete(self, project: ProjectModel) -> None:
        self.session.delete(project)
        self.session.flush()


class BuildRepository:
    """Build persistence and aggregate counters"""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        project_id: str,
        branch: str,
        commit_sha: str | None = None,
        commit_message: str | None = None,
        pull_request_number: int | None = None,
    ) -> BuildModel:
        """Create a pending build with the next build number of its project"""
        last_number = self.session.execute(
            select(func.max(BuildModel.build_number)).where(BuildModel.project_id == project_id)
        ).scalar_one_or_none()

        build = BuildModel(
            project_id=project_id,
            build_number=(last_number or 0) + 1,
            branch=branch,
            commit_sha=commit_sha,
            commit_message=commit_message,
            pull_request_number=pull_request_number,
        )
        self.session.add(build)
        self.session.flush()
        return build

    def get(self, build_id: str) -> BuildModel | None:
        return self.session.get(BuildModel, build_id)

    def require(self, build_id: str) -> BuildModel:
        build = self.get(build_id)
        if build is None:
            raise ResourceNotFoundError("Build", build_id)
        return build

    def list_by_project(
        self,
        project_id: str,
        branch: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> Page:
        query = select(BuildModel).where(BuildModel.project_id == project_id)
        if branch:
            query = query.where(BuildModel.branch == branch)
        query = query.order_by(BuildModel.build_number.desc())
        return _paginate(self.session, query, pagination)

    def get_latest_by_branch(self, project_id: str, branch: str) -> BuildModel | None:
        return self.session.execute(
            select(BuildModel)
            .where(BuildModel.project_id == project_id, BuildModel.branch == branch)
            .order_by(BuildModel.build_number.desc())
            .limit(1)
        ).scalar_one_or_none()

    def set_status(self, build: BuildModel, status: str, finished_at: datetime | None) -> BuildModel:
        build.status = status
        build.finished_at = finished_at
        self.session.flush()
        return build

    def update_stats(self, build_id: str) -> BuildModel:
        """
        Recompute snapshot counters from live snapshot rows.

        A single UPDATE with correlated counts, so repeated or concurrent
        calls converge on the same values.
        """
        self.session.flush()

        def count(*criteria):
            return (
                select(func.count(SnapshotModel.id))
                .where(SnapshotModel.build_id == build_id, *criteria)
                .scalar_subquery()
            )

        self.session.execute(
            update(BuildModel)
            .where(BuildModel.id == build_id)
            .values(
                total_snapshots=count(),
                changed_snapshots=count(SnapshotModel.diff_percentage > 0),
                approved_snapshots=count(
                    SnapshotModel.review_status == ReviewStatus.APPROVED.value
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        build = self.session.execute(
            select(BuildModel)
            .where(BuildModel.id == build_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if build is None:
            raise ResourceNotFoundError("Build", build_id)
        return build

    def delete(self, build: BuildModel) -> None:
        self.session.delete(build)
        self.session.flush()


class SnapshotRepository:
    """Snapshot persistence"""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        build_id: str,
        name: str,
        width: int | None = None,
        height: int | None = None,
        browser: str | None = None,
        viewport: str | None = None,
    ) -> SnapshotModel:
        snapshot = SnapshotModel(
            build_id=build_id,
            name=name,
            width=width,
            height=height,
            browser=browser,
            viewport=viewport,
        )
        self.session.add(snapshot)
        self.session.flush()
        return snapshot

    def get(self, snapshot_id: str) -> SnapshotModel | None:
        return self.session.get(SnapshotModel, snapshot_id)

    def require(self, snapshot_id: str) -> SnapshotModel:
        snapshot = self.get(snapshot_id)
        if snapshot is None:
            raise ResourceNotFoundError("Snapshot", snapshot_id)
        return snapshot

    def list_by_build(
        self,
        build_id: str,
        review_status: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> Page:
        query = select(SnapshotModel).where(SnapshotModel.build_id == build_id)
        if review_status:
            query = query.where(SnapshotModel.review_status == review_status)
        query = query.order_by(SnapshotModel.name.asc())
        return _paginate(self.session, query, pagination)

    def list_changed(self, build_id: str) -> list[SnapshotModel]:
        """Snapshots that differ from their baseline or have none yet"""
        result = self.session.execute(
            select(SnapshotModel)
            .where(
                SnapshotModel.build_id == build_id,
                or_(SnapshotModel.diff_percentage > 0, SnapshotModel.baseline_id.is_(None)),
            )
            .order_by(SnapshotModel.name.asc())
        )
        return list(result.scalars().all())

    def update_images(
        self,
        snapshot: SnapshotModel,
        base_image_path: str | None = None,
        comparison_image_path: str | None = None,
        diff_image_path: str | None = None,
        diff_percentage: float | None = None,
    ) -> SnapshotModel:
        """Set image paths and diff percentage; None leaves a field unchanged"""
        if base_image_path is not None:
            snapshot.base_image_path = base_image_path
        if comparison_image_path is not None:
            snapshot.comparison_image_path = comparison_image_path
        if diff_image_path is not None:
            snapshot.diff_image_path = diff_image_path
        if diff_percentage is not None:
            snapshot.diff_percentage = diff_percentage
        self.session.flush()
        return snapshot

    def set_status(
        self, snapshot: SnapshotModel, status: str, error_message: str | None = None
    ) -> SnapshotModel:
        snapshot.status = status
        snapshot.error_message = error_message
        self.session.flush()
        return snapshot

    def set_review(self, snapshot: SnapshotModel, review_status: str, reviewed_by: str) -> SnapshotModel:
        snapshot.review_status = review_status
        snapshot.reviewed_by = reviewed_by
        snapshot.reviewed_at = utcnow()
        self.session.flush()
        return snapshot

    def set_baseline(self, snapshot: SnapshotModel, baseline_id: str) -> SnapshotModel:
        snapshot.baseline_id = baseline_id
        self.session.flush()
        return snapshot

    def delete(self, snapshot: SnapshotModel) -> None:
        self.session.delete(snapshot)
        self.session.flush()


class BaselineRepository:
    """Baseline index keyed by variant"""

    def __init__(self, session: Session):
        self.session = session

    def find_by_key(
        self,
        project_id: str,
        name: str,
        branch: str,
        browser: str | None = None,
        viewport: str | None = None,
    ) -> BaselineModel | None:
        """
        Exact variant-key lookup; an unset browser or viewport only matches unset

        Raises:
            BaselineLookupError: If the query itself fails
        """
        key = make_variant_key(project_id, name, branch, browser, viewport)
        try:
            self.session.flush()
            return self.session.execute(
                select(BaselineModel)
                .where(BaselineModel.variant_key == key)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise BaselineLookupError(f"Baseline lookup failed for '{name}' on '{branch}': {e}") from e

    def upsert(
        self,
        project_id: str,
        name: str,
        branch: str,
        image_path: str,
        browser: str | None = None,
        viewport: str | None = None,
        width: int | None = None,
        height: int | None = None,
        source_snapshot_id: str | None = None,
    ) -> BaselineModel:
        """
        Create or replace the baseline of a variant key in one statement

        Concurrent upserts on the same key resolve to the last committed write.
        """
        key = make_variant_key(project_id, name, branch, browser, viewport)
        now = utcnow()

        stmt = sqlite_insert(BaselineModel).values(
            id=new_id(),
            project_id=project_id,
            name=name,
            branch=branch,
            browser=browser,
            viewport=viewport,
            variant_key=key,
            image_path=image_path,
            width=width,
            height=height,
            source_snapshot_id=source_snapshot_id,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BaselineModel.variant_key],
            set_={
                "image_path": stmt.excluded.image_path,
                "width": stmt.excluded.width,
                "height": stmt.excluded.height,
                "source_snapshot_id": stmt.excluded.source_snapshot_id,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        self.session.flush()
        self.session.execute(stmt)

        return self.session.execute(
            select(BaselineModel)
            .where(BaselineModel.variant_key == key)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def get(self, baseline_id: str) -> BaselineModel | None:
        return self.session.get(BaselineModel, baseline_id)

    def require(self, baseline_id: str) -> BaselineModel:
        baseline = self.get(baseline_id)
        if baseline is None:
            raise ResourceNotFoundError("Baseline", baseline_id)
        return baseline

    def list_by_project(
        self,
        project_id: str,
        branch: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> Page:
        query = select(BaselineModel).where(BaselineModel.project_id == project_id)
        if branch:
            query = query.where(BaselineModel.branch == branch)
        query = query.order_by(BaselineModel.name.asc())
        return _paginate(self.session, query, pagination)

    def delete(self, baseline: BaselineModel) -> None:
        self.session.delete(baseline)
        self.session.flush()

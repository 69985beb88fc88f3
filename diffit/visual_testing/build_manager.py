"""
Build Manager

Creates builds, moves them through their status lifecycle and recomputes
their snapshot counters.
"""

import logging

from sqlalchemy.orm import Session

from diffit.core.exceptions import ValidationError
from diffit.core.interfaces import IBlobStore
from diffit.storage.models import BuildModel, BuildStatus, SnapshotModel, utcnow
from diffit.storage.repositories import (
    BuildRepository,
    Page,
    PaginationParams,
    ProjectRepository,
    SnapshotRepository,
)
from diffit.visual_testing.lifecycle import BUILD_TRANSITIONS, check_transition, is_terminal
from diffit.visual_testing.schemas import CreateBuildRequest

logger = logging.getLogger(__name__)


class BuildManager:
    """
    Manages builds for visual regression runs.

    Features:
    - Per-project monotonically increasing build numbers
    - pending -> processing -> completed/failed lifecycle, terminal states final
    - Counters recomputed from snapshot rows on demand
    """

    def __init__(self, session: Session, blob_store: IBlobStore | None = None):
        self.session = session
        self.blob_store = blob_store
        self.projects = ProjectRepository(session)
        self.builds = BuildRepository(session)
        self.snapshots = SnapshotRepository(session)

    def create_build(self, request: CreateBuildRequest) -> BuildModel:
        """
        Start a pending build.

        Raises:
            ResourceNotFoundError: If the project does not exist
        """
        project = self.projects.require(request.project_id)

        build = self.builds.create(
            project_id=project.id,
            branch=request.branch,
            commit_sha=request.commit_sha,
            commit_message=request.commit_message,
            pull_request_number=request.pull_request_number,
        )
        self.session.commit()

        logger.info(
            f"Created build #{build.build_number} for {project.slug} on '{build.branch}' (id={build.id})"
        )
        return build

    def get_build(self, build_id: str) -> BuildModel:
        return self.builds.require(build_id)

    def list_builds(
        self,
        project_id: str,
        branch: str | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> Page:
        return self.builds.list_by_project(
            project_id, branch=branch, pagination=PaginationParams.create(page, per_page)
        )

    def get_latest_build(self, project_id: str, branch: str | None = None) -> BuildModel | None:
        """Latest build of a branch (default: the project's default branch)"""
        project = self.projects.require(project_id)
        return self.builds.get_latest_by_branch(project.id, branch or project.default_branch)

    def list_snapshots(
        self,
        build_id: str,
        review_status: str | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> Page:
        return self.snapshots.list_by_build(
            build_id, review_status=review_status, pagination=PaginationParams.create(page, per_page)
        )

    def list_changed_snapshots(self, build_id: str) -> list[SnapshotModel]:
        return self.snapshots.list_changed(build_id)

    def update_status(self, build_id: str, status: BuildStatus | str) -> BuildModel:
        """
        Move a build to a new status.

        Completed and failed are terminal and stamp finished_at.

        Raises:
            InvalidStatusTransitionError: If the lifecycle forbids the change
            ValidationError: If the status is unknown
        """
        try:
            status = BuildStatus(status).value
        except ValueError as e:
            raise ValidationError(f"Unknown build status: {status}") from e

        build = self.builds.require(build_id)

        if not check_transition("Build", BUILD_TRANSITIONS, build.status, status):
            return build

        previous = build.status
        finished_at = utcnow() if is_terminal(status) else None
        self.builds.set_status(build, status, finished_at)
        self.session.commit()

        logger.info(f"Build #{build.build_number} ({build.id}): {previous} -> {status}")
        return build

    def update_stats(self, build_id: str) -> BuildModel:
        """Recompute total/changed/approved counters; never changes status"""
        build = self.builds.update_stats(build_id)
        self.session.commit()

        logger.debug(
            f"Build {build_id} stats: total={build.total_snapshots}, "
            f"changed={build.changed_snapshots}, approved={build.approved_snapshots}"
        )
        return build

    def finalize(self, build_id: str) -> BuildModel:
        """Recompute stats and mark the build completed"""
        build = self.update_stats(build_id)
        if build.status == BuildStatus.PENDING.value:
            self.update_status(build_id, BuildStatus.PROCESSING)
        return self.update_status(build_id, BuildStatus.COMPLETED)

    def delete_build(self, build_id: str) -> bool:
        """Delete a build, its snapshots and their stored comparison/diff images"""
        build = self.builds.require(build_id)
        paths = [
            path
            for snapshot in build.snapshots
            for path in (snapshot.comparison_image_path, snapshot.diff_image_path)
            if path
        ]

        self.builds.delete(build)
        self.session.commit()

        if self.blob_store is not None:
            for path in paths:
                try:
                    self.blob_store.delete(path)
                except OSError as e:
                    logger.warning(f"Failed to delete stored file {path}: {e}")

        logger.info(f"Deleted build {build_id} ({len(paths)} stored files)")
        return True

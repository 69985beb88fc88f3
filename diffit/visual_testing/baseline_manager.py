"""
Baseline Manager

CRUD operations for baselines outside the review flow: direct upload,
promotion from an arbitrary snapshot, listing and deletion.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from diffit.core.exceptions import DecodeError, ImageDecodeError, ValidationError
from diffit.core.interfaces import BlobCategory, IBlobStore, IImageDecoder
from diffit.storage.blob_store import unique_filename
from diffit.storage.models import BaselineModel
from diffit.storage.repositories import (
    BaselineRepository,
    BuildRepository,
    Page,
    PaginationParams,
    ProjectRepository,
    SnapshotRepository,
)
from diffit.visual_testing.baseline_resolver import BaselineResolver
from diffit.visual_testing.comparison import PillowImageDecoder

logger = logging.getLogger(__name__)


class BaselineManager:
    """
    Manages screenshot baselines for visual regression testing.

    Features:
    - Upload a baseline image directly for a variant key
    - Promote any snapshot's image to a baseline
    - Resolve, list and delete baselines
    """

    def __init__(
        self,
        session: Session,
        blob_store: IBlobStore,
        decoder: IImageDecoder | None = None,
    ):
        """
        Initialize baseline manager.

        Args:
            session: SQLAlchemy database session
            blob_store: Storage for baseline images
            decoder: Image decoder used to validate uploads (default: Pillow)
        """
        self.session = session
        self.blob_store = blob_store
        self.decoder = decoder or PillowImageDecoder()
        self.projects = ProjectRepository(session)
        self.builds = BuildRepository(session)
        self.snapshots = SnapshotRepository(session)
        self.baselines = BaselineRepository(session)
        self.resolver = BaselineResolver(self.baselines)

    def create_baseline(
        self,
        project_id: str,
        name: str,
        branch: str,
        image: bytes,
        browser: str | None = None,
        viewport: str | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> BaselineModel:
        """
        Create or replace a baseline from an uploaded image.

        Args:
            project_id: Owning project
            name: Logical snapshot name
            branch: Branch the baseline applies to
            image: Encoded image bytes
            browser: Optional browser discriminator
            viewport: Optional viewport discriminator
            width: Image width (default: read from the image)
            height: Image height (default: read from the image)

        Returns:
            The upserted baseline

        Raises:
            ResourceNotFoundError: If the project does not exist
            ValidationError: If name or branch is empty
            ImageDecodeError: If the image cannot be decoded
        """
        if not name or not branch:
            raise ValidationError("name and branch are required")

        project = self.projects.require(project_id)

        try:
            decoded = self.decoder.decode(image)
        except DecodeError as e:
            raise ImageDecodeError("baseline", str(e)) from e

        image_path = self.blob_store.save(
            project.id, BlobCategory.BASELINE, unique_filename(f"{name}.png"), image
        )

        baseline = self.baselines.upsert(
            project_id=project.id,
            name=name,
            branch=branch,
            image_path=image_path,
            browser=browser or None,
            viewport=viewport or None,
            width=width or decoded.width,
            height=height or decoded.height,
        )
        self.session.commit()

        logger.info(f"Created baseline: {name} on '{branch}' (id={baseline.id})")
        return baseline

    def create_from_snapshot(self, snapshot_id: str, branch: str | None = None) -> BaselineModel:
        """
        Promote a snapshot's image to a baseline without reviewing it.

        Args:
            snapshot_id: Source snapshot
            branch: Target branch (default: the snapshot's build branch)

        Raises:
            ResourceNotFoundError: If the snapshot or its build does not exist
            ValidationError: If the snapshot has no comparison image
        """
        snapshot = self.snapshots.require(snapshot_id)
        if not snapshot.comparison_image_path:
            raise ValidationError(f"Snapshot {snapshot_id} has no comparison image")

        build = self.builds.require(snapshot.build_id)
        target_branch = branch or build.branch

        image_path = self.blob_store.copy(
            snapshot.comparison_image_path,
            build.project_id,
            BlobCategory.BASELINE,
            f"{snapshot.name}.png",
        )

        baseline = self.baselines.upsert(
            project_id=build.project_id,
            name=snapshot.name,
            branch=target_branch,
            image_path=image_path,
            browser=snapshot.browser,
            viewport=snapshot.viewport,
            width=snapshot.width,
            height=snapshot.height,
            source_snapshot_id=snapshot.id,
        )
        self.session.commit()

        logger.info(
            f"Created baseline from snapshot {snapshot_id}: {baseline.name} on '{target_branch}'"
        )
        return baseline

    def get_baseline(self, baseline_id: str) -> BaselineModel:
        return self.baselines.require(baseline_id)

    def get_baseline_image(self, baseline_id: str) -> bytes:
        return self.blob_store.get(self.baselines.require(baseline_id).image_path)

    def resolve(
        self,
        project_id: str,
        name: str,
        branch: str,
        browser: str | None = None,
        viewport: str | None = None,
    ) -> BaselineModel | None:
        """Resolve with the default-branch fallback (see BaselineResolver)"""
        project = self.projects.require(project_id)
        return self.resolver.resolve(project, name, branch, browser, viewport)

    def list_baselines(
        self,
        project_id: str,
        branch: str | None = None,
        page: int | None = None,
        per_page: int | None = None,
    ) -> Page:
        return self.baselines.list_by_project(
            project_id, branch=branch, pagination=PaginationParams.create(page, per_page)
        )

    def delete_baseline(self, baseline_id: str) -> bool:
        """
        Delete a baseline and its image.

        Snapshots compared against it keep their base_image_path but lose
        their baseline_id link.
        """
        baseline = self.baselines.require(baseline_id)
        image_path = baseline.image_path
        name = baseline.name

        self.baselines.delete(baseline)
        self.session.commit()

        try:
            self.blob_store.delete(image_path)
        except OSError as e:
            logger.warning(f"Failed to delete baseline image: {e}")

        logger.info(f"Deleted baseline: {name}")
        return True

    def summary(self, baseline_id: str) -> dict[str, Any]:
        """Baseline as a dictionary with whether its image is still stored"""
        baseline = self.baselines.require(baseline_id)
        data = baseline.to_dict()
        data["image_available"] = self.blob_store.exists(baseline.image_path)
        return data

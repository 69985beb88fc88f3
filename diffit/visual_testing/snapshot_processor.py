"""
Snapshot Processor

Ingests uploaded screenshots: stores the comparison image, resolves the
baseline, runs the diff and records the outcome on the snapshot.
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from diffit.core.config import get_settings
from diffit.core.exceptions import (
    BlobNotFoundError,
    ComparisonTimeoutError,
    DiffitError,
    ImageDecodeError,
)
from diffit.core.interfaces import BlobCategory, IBlobStore
from diffit.storage.models import SnapshotModel, SnapshotStatus
from diffit.storage.repositories import (
    BaselineRepository,
    BuildRepository,
    ProjectRepository,
    SnapshotRepository,
)
from diffit.visual_testing.baseline_resolver import BaselineResolver
from diffit.visual_testing.diff_orchestrator import ArtifactKey, DiffOrchestrator
from diffit.visual_testing.lifecycle import SNAPSHOT_TRANSITIONS, check_transition
from diffit.visual_testing.schemas import CreateSnapshotRequest

logger = logging.getLogger(__name__)


@dataclass
class SnapshotUpload:
    """A snapshot to register plus its captured image, if any"""

    request: CreateSnapshotRequest
    image: bytes | None = None


@dataclass
class IngestResult:
    """Outcome of ingesting one upload"""

    snapshot: SnapshotModel | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SnapshotProcessor:
    """
    Drives new snapshots from upload to a completed or failed comparison.

    A snapshot whose comparison cannot complete is recorded as failed with
    the reason; it never disappears.
    """

    def __init__(
        self,
        session: Session,
        blob_store: IBlobStore,
        orchestrator: DiffOrchestrator | None = None,
        max_concurrency: int | None = None,
    ):
        self.session = session
        self.blob_store = blob_store
        self.projects = ProjectRepository(session)
        self.builds = BuildRepository(session)
        self.snapshots = SnapshotRepository(session)
        self.resolver = BaselineResolver(BaselineRepository(session))
        self.orchestrator = orchestrator or DiffOrchestrator(blob_store=blob_store)
        self.max_concurrency = max_concurrency or get_settings().max_concurrent_comparisons

    def create_snapshot(self, request: CreateSnapshotRequest) -> SnapshotModel:
        """
        Register a pending snapshot in a build.

        Raises:
            ResourceNotFoundError: If the build does not exist
        """
        build = self.builds.require(request.build_id)
        snapshot = self.snapshots.create(
            build_id=build.id,
            name=request.name,
            width=request.width,
            height=request.height,
            browser=request.browser,
            viewport=request.viewport,
        )
        self.session.commit()

        logger.info(f"Created snapshot '{snapshot.name}' in build #{build.build_number} (id={snapshot.id})")
        return snapshot

    async def process_snapshot(self, snapshot_id: str, image: bytes) -> SnapshotModel:
        """
        Store the captured image and compare it against the resolved baseline.

        Returns:
            The snapshot, completed or failed
        """
        snapshot = self.snapshots.require(snapshot_id)
        build = self.builds.require(snapshot.build_id)
        project = self.projects.require(build.project_id)

        self._set_status(snapshot, SnapshotStatus.PROCESSING)

        try:
            comparison_path = self.blob_store.save(
                project.id, BlobCategory.SNAPSHOT_COMPARISON, f"{snapshot.id}.png", image
            )
        except OSError as e:
            return self._fail(snapshot, f"Failed to store comparison image: {e}")

        self.snapshots.update_images(snapshot, comparison_image_path=comparison_path)
        self.session.commit()

        baseline = self.resolver.resolve(
            project, snapshot.name, build.branch, snapshot.browser, snapshot.viewport
        )

        base_image = None
        if baseline is not None:
            try:
                base_image = self.blob_store.get(baseline.image_path)
            except (BlobNotFoundError, OSError) as e:
                return self._fail(snapshot, f"Failed to read baseline image: {e}")

        try:
            outcome = await self.orchestrator.compare_async(
                base_image,
                image,
                artifact_key=ArtifactKey(project_id=project.id, filename=f"{snapshot.id}.png"),
            )
        except (ImageDecodeError, ComparisonTimeoutError) as e:
            return self._fail(snapshot, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error comparing snapshot '{snapshot.name}' ({snapshot.id})")
            return self._fail(snapshot, f"Comparison failed: {e}")

        self.snapshots.update_images(
            snapshot,
            base_image_path=baseline.image_path if baseline is not None else None,
            diff_image_path=outcome.diff_artifact_path,
            diff_percentage=outcome.diff_percentage,
        )
        if baseline is not None:
            self.snapshots.set_baseline(snapshot, baseline.id)

        self._set_status(snapshot, SnapshotStatus.COMPLETED)
        self.builds.update_stats(snapshot.build_id)
        self.session.commit()

        logger.info(
            f"Processed snapshot '{snapshot.name}' ({snapshot.id}): "
            f"diff={outcome.diff_percentage:.2f}%, baseline={baseline.id if baseline else 'none'}"
        )
        return snapshot

    async def ingest(self, request: CreateSnapshotRequest, image: bytes | None = None) -> SnapshotModel:
        """Create a snapshot and process its image when one was uploaded"""
        snapshot = self.create_snapshot(request)
        if image is None:
            self.builds.update_stats(snapshot.build_id)
            self.session.commit()
            return snapshot
        return await self.process_snapshot(snapshot.id, image)

    async def ingest_many(self, uploads: list[SnapshotUpload]) -> list[IngestResult]:
        """
        Ingest uploads concurrently, bounded by max_concurrency.

        Each upload is independent: a failure is reported on its own result
        and does not stop the others. Results keep the input order.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(upload: SnapshotUpload) -> IngestResult:
            async with semaphore:
                try:
                    snapshot = await self.ingest(upload.request, upload.image)
                except DiffitError as e:
                    logger.error(f"Failed to ingest snapshot '{upload.request.name}': {e}")
                    self.session.rollback()
                    return IngestResult(snapshot=None, error=str(e))
                except Exception as e:
                    logger.exception(f"Unexpected error ingesting snapshot '{upload.request.name}'")
                    self.session.rollback()
                    return IngestResult(snapshot=None, error=str(e) or type(e).__name__)
            if snapshot.status == SnapshotStatus.FAILED.value:
                return IngestResult(snapshot=snapshot, error=snapshot.error_message)
            return IngestResult(snapshot=snapshot)

        return list(await asyncio.gather(*(run(upload) for upload in uploads)))

    def delete_snapshot(self, snapshot_id: str) -> bool:
        """Delete a snapshot and its stored comparison/diff images"""
        snapshot = self.snapshots.require(snapshot_id)
        build_id = snapshot.build_id
        paths = [p for p in (snapshot.comparison_image_path, snapshot.diff_image_path) if p]

        self.snapshots.delete(snapshot)
        self.builds.update_stats(build_id)
        self.session.commit()

        for path in paths:
            try:
                self.blob_store.delete(path)
            except OSError as e:
                logger.warning(f"Failed to delete stored file {path}: {e}")

        logger.info(f"Deleted snapshot {snapshot_id}")
        return True

    def _set_status(self, snapshot: SnapshotModel, status: SnapshotStatus) -> None:
        if check_transition("Snapshot", SNAPSHOT_TRANSITIONS, snapshot.status, status.value):
            self.snapshots.set_status(snapshot, status.value)
            self.session.commit()

    def _fail(self, snapshot: SnapshotModel, reason: str) -> SnapshotModel:
        logger.error(f"Snapshot '{snapshot.name}' ({snapshot.id}) failed: {reason}")
        check_transition("Snapshot", SNAPSHOT_TRANSITIONS, snapshot.status, SnapshotStatus.FAILED.value)
        self.snapshots.set_status(snapshot, SnapshotStatus.FAILED.value, error_message=reason)
        self.builds.update_stats(snapshot.build_id)
        self.session.commit()
        return snapshot

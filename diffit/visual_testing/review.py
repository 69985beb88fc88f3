"""
Review State Machine

Applies review decisions to snapshots and promotes approved snapshots to
baselines for their variant key.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from diffit.core.exceptions import BaselinePromotionError, DiffitError, ValidationError
from diffit.core.interfaces import BlobCategory, IBlobStore
from diffit.storage.models import BaselineModel, ReviewStatus, SnapshotModel
from diffit.storage.repositories import (
    BaselineRepository,
    BuildRepository,
    SnapshotRepository,
)
from diffit.visual_testing.schemas import BatchReviewRequest, ReviewRequest

logger = logging.getLogger(__name__)


@dataclass
class BatchReviewResult:
    """Outcome of a batch review, per snapshot id"""

    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "updated": len(self.updated),
            "updated_ids": self.updated,
            "skipped_ids": self.skipped,
            "failed": self.failed,
        }


class ReviewStateMachine:
    """
    Reviews snapshots: unreviewed -> approved | rejected, re-review allowed.

    Every review overwrites reviewer and time. Approval promotes the
    snapshot's comparison image to the baseline of
    (project, name, branch of the owning build, browser, viewport).
    """

    def __init__(self, session: Session, blob_store: IBlobStore):
        self.session = session
        self.blob_store = blob_store
        self.snapshots = SnapshotRepository(session)
        self.builds = BuildRepository(session)
        self.baselines = BaselineRepository(session)

    def review(self, snapshot_id: str, request: ReviewRequest) -> SnapshotModel:
        """
        Review a single snapshot.

        Raises:
            ResourceNotFoundError: If the snapshot does not exist
            ValidationError: If approving a snapshot without a comparison image
            BaselinePromotionError: If the baseline could not be updated
        """
        snapshot = self.snapshots.require(snapshot_id)

        try:
            self._apply(snapshot, request)
        except DiffitError:
            self.session.rollback()
            raise

        self.builds.update_stats(snapshot.build_id)
        self.session.commit()

        logger.info(
            f"Snapshot '{snapshot.name}' ({snapshot.id}) {request.review_status.value} "
            f"by {request.reviewed_by}"
        )
        return snapshot

    def batch_review(self, request: BatchReviewRequest) -> BatchReviewResult:
        """
        Apply one decision to many snapshots, independently.

        Missing snapshots, and snapshots without a comparison image when
        approving, are skipped. A failure on one snapshot is logged and rolled
        back for that snapshot only; the rest of the batch proceeds.

        Review and promotion are atomic per snapshot, as in review(): when
        promoting an approved snapshot fails, its review status and reviewer
        are rolled back too and the snapshot is reported in ``failed``.
        """
        result = BatchReviewResult()
        build_ids: set[str] = set()

        for snapshot_id in dict.fromkeys(request.snapshot_ids):
            snapshot = self.snapshots.get(snapshot_id)
            if snapshot is None:
                logger.warning(f"Batch review: snapshot {snapshot_id} not found, skipping")
                result.skipped.append(snapshot_id)
                continue

            if request.review_status == ReviewStatus.APPROVED and not snapshot.comparison_image_path:
                logger.warning(
                    f"Batch review: snapshot {snapshot_id} has no comparison image, skipping"
                )
                result.skipped.append(snapshot_id)
                continue

            savepoint = self.session.begin_nested()
            try:
                self._apply(snapshot, request)
                savepoint.commit()
            except (DiffitError, SQLAlchemyError) as e:
                savepoint.rollback()
                logger.error(f"Batch review: snapshot {snapshot_id} failed: {e}")
                result.failed[snapshot_id] = str(e)
                continue

            result.updated.append(snapshot_id)
            build_ids.add(snapshot.build_id)

        for build_id in build_ids:
            self.builds.update_stats(build_id)
        self.session.commit()

        logger.info(
            f"Batch review ({request.review_status.value} by {request.reviewed_by}): "
            f"{len(result.updated)} updated, {len(result.skipped)} skipped, "
            f"{len(result.failed)} failed"
        )
        return result

    def promote(self, snapshot: SnapshotModel) -> BaselineModel:
        """
        Make a snapshot's comparison image the baseline for its variant key.

        The image is copied into baseline storage so the baseline survives
        deletion of the snapshot's build.

        Raises:
            BaselinePromotionError: If the image or baseline row cannot be written
        """
        if not snapshot.comparison_image_path:
            raise BaselinePromotionError(snapshot.id, "snapshot has no comparison image")

        build = self.builds.get(snapshot.build_id)
        if build is None:
            raise BaselinePromotionError(snapshot.id, "owning build not found")

        try:
            image_path = self.blob_store.copy(
                snapshot.comparison_image_path,
                build.project_id,
                BlobCategory.BASELINE,
                f"{snapshot.id}.png",
            )
            baseline = self.baselines.upsert(
                project_id=build.project_id,
                name=snapshot.name,
                branch=build.branch,
                image_path=image_path,
                browser=snapshot.browser,
                viewport=snapshot.viewport,
                width=snapshot.width,
                height=snapshot.height,
                source_snapshot_id=snapshot.id,
            )
        except (DiffitError, OSError, SQLAlchemyError) as e:
            raise BaselinePromotionError(snapshot.id, str(e)) from e

        logger.info(
            f"Promoted snapshot {snapshot.id} to baseline '{baseline.name}' on '{baseline.branch}' "
            f"(baseline={baseline.id})"
        )
        return baseline

    def _apply(self, snapshot: SnapshotModel, request: ReviewRequest) -> None:
        status = request.review_status
        if status == ReviewStatus.APPROVED and not snapshot.comparison_image_path:
            raise ValidationError(
                f"Snapshot {snapshot.id} has no comparison image and cannot be approved",
                recovery_hint="Upload an image for the snapshot before approving it",
            )

        self.snapshots.set_review(snapshot, status.value, request.reviewed_by)

        if status == ReviewStatus.APPROVED:
            self.promote(snapshot)

"""
Diff Orchestrator

Drives a single comparison: decodes both images, runs the comparator,
computes the diff percentage over the base image bounds and persists the
visual diff artifact when the images differ.
"""

import asyncio
import logging
from dataclasses import dataclass, replace

from diffit.core.config import get_settings
from diffit.core.exceptions import (
    ArtifactWriteError,
    ComparisonTimeoutError,
    DecodeError,
    ImageDecodeError,
    ValidationError,
)
from diffit.core.interfaces import (
    BlobCategory,
    IBlobStore,
    IImageComparator,
    IImageDecoder,
    IImageEncoder,
)
from diffit.visual_testing.comparison import (
    PillowImageDecoder,
    PngImageEncoder,
    ScreenshotComparator,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactKey:
    """Where a diff artifact is stored: project scope plus filename"""

    project_id: str
    filename: str


@dataclass(frozen=True)
class DiffOutcome:
    """Result of one orchestrated comparison"""

    is_equal: bool
    diff_percentage: float
    diff_artifact_path: str | None = None


NO_DIFFERENCE = DiffOutcome(is_equal=True, diff_percentage=0.0)


class DiffOrchestrator:
    """
    Compares a comparison image against an optional base image.

    Collaborators are injected; the Pillow implementations are used when
    none are given.
    """

    def __init__(
        self,
        blob_store: IBlobStore | None = None,
        decoder: IImageDecoder | None = None,
        comparator: IImageComparator | None = None,
        encoder: IImageEncoder | None = None,
        threshold: float | None = None,
        timeout: float | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            blob_store: Storage for diff artifacts (artifacts are skipped without one)
            decoder: Image decoder (default: Pillow)
            comparator: Pixel comparator (default: ScreenshotComparator)
            encoder: Artifact encoder (default: PNG)
            threshold: Default per-pixel tolerance (default: settings.diff_threshold)
            timeout: Default per-comparison timeout in seconds for compare_async
        """
        settings = get_settings()
        self.blob_store = blob_store
        self.decoder = decoder or PillowImageDecoder()
        self.comparator = comparator or ScreenshotComparator()
        self.encoder = encoder or PngImageEncoder()
        self.threshold = settings.diff_threshold if threshold is None else threshold
        self.timeout = settings.comparison_timeout_seconds if timeout is None else timeout

    def compare(
        self,
        base_image: bytes | None,
        comparison_image: bytes,
        threshold: float | None = None,
        artifact_key: ArtifactKey | None = None,
    ) -> DiffOutcome:
        """
        Compare two encoded images.

        Args:
            base_image: Encoded baseline image, None when there is no baseline
            comparison_image: Encoded new capture
            threshold: Per-pixel tolerance in [0, 1] (default: configured threshold)
            artifact_key: Where to store the visual diff; no artifact without it

        Returns:
            DiffOutcome with equality, percentage and optional artifact path

        Raises:
            ImageDecodeError: If either image cannot be decoded
            ValidationError: If the threshold is outside [0, 1]
        """
        threshold = self._check_threshold(threshold)
        outcome, visual_diff = self._measure(base_image, comparison_image, threshold)
        return self._attach_artifact(outcome, visual_diff, artifact_key)

    async def compare_async(
        self,
        base_image: bytes | None,
        comparison_image: bytes,
        threshold: float | None = None,
        artifact_key: ArtifactKey | None = None,
        timeout: float | None = None,
    ) -> DiffOutcome:
        """
        Run the comparison in a worker thread under a timeout.

        The diff artifact is written only once the comparison has finished
        in time. A timed-out worker thread keeps running until it returns,
        but its result is discarded and nothing is persisted for it.

        Raises:
            ComparisonTimeoutError: If the comparison exceeds the timeout
        """
        threshold = self._check_threshold(threshold)
        timeout = self.timeout if timeout is None else timeout
        try:
            outcome, visual_diff = await asyncio.wait_for(
                asyncio.to_thread(self._measure, base_image, comparison_image, threshold),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ComparisonTimeoutError(timeout) from e

        if outcome.is_equal:
            return outcome
        return await asyncio.to_thread(self._attach_artifact, outcome, visual_diff, artifact_key)

    def _check_threshold(self, threshold: float | None) -> float:
        threshold = self.threshold if threshold is None else threshold
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError(f"Threshold must be between 0 and 1, got {threshold}")
        return threshold

    def _measure(self, base_image: bytes | None, comparison_image: bytes, threshold: float):
        """Decode and compare; returns the outcome without artifact plus the visual diff."""
        if base_image is None:
            return NO_DIFFERENCE, None

        base = self._decode(base_image, "base")
        current = self._decode(comparison_image, "comparison")

        result = self.comparator.compare(base, current, threshold)
        # A difference always means at least one differing pixel
        if result.equal or result.differing_pixel_count <= 0:
            return NO_DIFFERENCE, None

        total_pixels = base.width * base.height
        if total_pixels:
            percentage = result.differing_pixel_count / total_pixels * 100
        else:
            percentage = 100.0
        percentage = min(percentage, 100.0)

        logger.info(
            f"Images differ: {result.differing_pixel_count}/{total_pixels} pixels "
            f"({percentage:.2f}%), threshold={threshold}"
        )
        return DiffOutcome(is_equal=False, diff_percentage=percentage), result.visual_diff

    def _attach_artifact(
        self,
        outcome: DiffOutcome,
        visual_diff,
        artifact_key: ArtifactKey | None,
    ) -> DiffOutcome:
        if outcome.is_equal or artifact_key is None or visual_diff is None:
            return outcome
        try:
            artifact_path = self._write_artifact(visual_diff, artifact_key)
        except ArtifactWriteError as e:
            logger.warning(f"{e}; reporting percentage without artifact")
            return outcome
        return replace(outcome, diff_artifact_path=artifact_path)

    def _decode(self, data: bytes, side: str):
        try:
            return self.decoder.decode(data)
        except DecodeError as e:
            raise ImageDecodeError(side, str(e)) from e

    def _write_artifact(self, visual_diff, artifact_key: ArtifactKey) -> str:
        if self.blob_store is None:
            raise ArtifactWriteError("No blob store configured for diff artifacts")
        try:
            data = self.encoder.encode(visual_diff)
            path = self.blob_store.save(
                artifact_key.project_id,
                BlobCategory.SNAPSHOT_DIFF,
                artifact_key.filename,
                data,
            )
        except (OSError, ValueError, ValidationError) as e:
            raise ArtifactWriteError(f"Failed to write diff artifact {artifact_key.filename}: {e}") from e

        logger.info(f"Diff written to: {path}")
        return path

"""
Tree Diff Runner

Compares two screenshot directory trees without touching the database:
pairs files with the DirectoryTreeReconciler, diffs every matched pair and
reports one-sided files as added or removed.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from diffit.core.exceptions import DiffitError
from diffit.storage.blob_store import FileBlobStore
from diffit.visual_testing.diff_orchestrator import ArtifactKey, DiffOrchestrator
from diffit.visual_testing.reconciler import ComparisonPair, DirectoryTreeReconciler

logger = logging.getLogger(__name__)


class PairStatus(str, Enum):
    """Outcome of one reconciled entry"""

    UNCHANGED = "unchanged"
    CHANGED = "changed"
    ADDED = "added"
    REMOVED = "removed"
    FAILED = "failed"


@dataclass
class PairResult:
    """Comparison result for one reconciled entry"""

    pair: ComparisonPair
    status: PairStatus
    diff_percentage: float = 0.0
    artifact_path: Path | None = None
    error: str | None = None

    @property
    def name(self) -> str:
        if self.pair.diff_name:
            return self.pair.diff_name
        path = self.pair.feature_path or self.pair.base_path
        return path.name if path else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "diff_percentage": self.diff_percentage,
            "artifact_path": str(self.artifact_path) if self.artifact_path else None,
            "error": self.error,
        }


@dataclass
class TreeDiffReport:
    """All pair results of one tree comparison"""

    results: list[PairResult] = field(default_factory=list)

    def count(self, status: PairStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def has_differences(self) -> bool:
        return any(r.status != PairStatus.UNCHANGED for r in self.results)

    def summary(self) -> dict[str, int]:
        return {status.value: self.count(status) for status in PairStatus}


class TreeDiffRunner:
    """
    Runs the directory-tree comparison workflow.

    Diff artifacts land under ``<diff_dir>/diffs/`` mirroring the relative
    layout of the compared trees.
    """

    def __init__(
        self,
        diff_dir: Path,
        threshold: float | None = None,
        reconciler: DirectoryTreeReconciler | None = None,
        orchestrator: DiffOrchestrator | None = None,
    ):
        self.diff_store = FileBlobStore(diff_dir)
        self.threshold = threshold
        self.reconciler = reconciler or DirectoryTreeReconciler()
        self.orchestrator = orchestrator or DiffOrchestrator(blob_store=self.diff_store)

    def run(self, base_dir: Path, feature_dir: Path) -> TreeDiffReport:
        """
        Compare two trees.

        Raises:
            DirectoryReadError: If either root cannot be listed
        """
        report = TreeDiffReport()
        for pair in self.reconciler.reconcile(Path(base_dir), Path(feature_dir)):
            report.results.append(self._run_pair(pair))

        logger.info(f"Tree diff finished: {report.summary()}")
        return report

    def _run_pair(self, pair: ComparisonPair) -> PairResult:
        if pair.is_added:
            return PairResult(pair, PairStatus.ADDED)
        if pair.is_removed:
            return PairResult(pair, PairStatus.REMOVED)

        try:
            outcome = self.orchestrator.compare(
                pair.base_path.read_bytes(),
                pair.feature_path.read_bytes(),
                threshold=self.threshold,
                artifact_key=ArtifactKey("", pair.diff_name),
            )
        except (DiffitError, OSError) as e:
            logger.warning(f"Failed to compare {pair.diff_name}: {e}")
            return PairResult(pair, PairStatus.FAILED, error=str(e))

        if outcome.is_equal:
            return PairResult(pair, PairStatus.UNCHANGED)

        artifact = None
        if outcome.diff_artifact_path:
            artifact = self.diff_store.full_path(outcome.diff_artifact_path)
        return PairResult(
            pair,
            PairStatus.CHANGED,
            diff_percentage=outcome.diff_percentage,
            artifact_path=artifact,
        )

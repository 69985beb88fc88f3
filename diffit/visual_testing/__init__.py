"""
Visual Testing Module

Snapshot ingestion, baseline resolution and promotion, pixel comparison and
review workflow for visual regression testing.
"""

from diffit.visual_testing.baseline_manager import BaselineManager
from diffit.visual_testing.baseline_resolver import BaselineResolver
from diffit.visual_testing.build_manager import BuildManager
from diffit.visual_testing.comparison import ComparatorResult, ScreenshotComparator
from diffit.visual_testing.diff_orchestrator import ArtifactKey, DiffOrchestrator, DiffOutcome
from diffit.visual_testing.project_manager import ProjectManager
from diffit.visual_testing.reconciler import ComparisonPair, DirectoryTreeReconciler
from diffit.visual_testing.review import BatchReviewResult, ReviewStateMachine
from diffit.visual_testing.snapshot_processor import SnapshotProcessor, SnapshotUpload
from diffit.visual_testing.tree_diff import PairStatus, TreeDiffReport, TreeDiffRunner

__all__ = [
    "ArtifactKey",
    "BaselineManager",
    "BaselineResolver",
    "BatchReviewResult",
    "BuildManager",
    "ComparatorResult",
    "ComparisonPair",
    "DiffOrchestrator",
    "DiffOutcome",
    "DirectoryTreeReconciler",
    "PairStatus",
    "ProjectManager",
    "ReviewStateMachine",
    "ScreenshotComparator",
    "SnapshotProcessor",
    "SnapshotUpload",
    "TreeDiffReport",
    "TreeDiffRunner",
]

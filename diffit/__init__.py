"""
diffit

Visual regression backend: reconciles screenshot snapshots against accepted
baselines, surfaces pixel differences and promotes approved snapshots.
"""

__version__ = "0.4.0"
__license__ = "MIT"

from diffit.visual_testing.baseline_resolver import BaselineResolver
from diffit.visual_testing.diff_orchestrator import DiffOrchestrator, DiffOutcome
from diffit.visual_testing.reconciler import ComparisonPair, DirectoryTreeReconciler
from diffit.visual_testing.review import ReviewStateMachine

__all__ = [
    "BaselineResolver",
    "ComparisonPair",
    "DiffOrchestrator",
    "DiffOutcome",
    "DirectoryTreeReconciler",
    "ReviewStateMachine",
]

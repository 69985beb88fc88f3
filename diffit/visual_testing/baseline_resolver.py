"""
Baseline Resolver

Finds the baseline a new snapshot should be compared against.
"""

import logging

from diffit.core.exceptions import BaselineLookupError
from diffit.storage.models import BaselineModel, ProjectModel
from diffit.storage.repositories import BaselineRepository

logger = logging.getLogger(__name__)


class BaselineResolver:
    """
    Resolves a variant key to its baseline with a branch fallback.

    1. Exact match on (project, name, branch, browser, viewport); an unset
       browser or viewport only matches an unset one.
    2. Otherwise the same key on the project's configured default branch.
    3. Otherwise None: the snapshot is new, which is not an error.
    """

    def __init__(self, baselines: BaselineRepository):
        self.baselines = baselines

    def resolve(
        self,
        project: ProjectModel,
        name: str,
        branch: str,
        browser: str | None = None,
        viewport: str | None = None,
    ) -> BaselineModel | None:
        baseline = self._lookup(project, name, branch, browser, viewport)
        if baseline is not None:
            return baseline

        default_branch = project.default_branch
        if default_branch and default_branch != branch:
            baseline = self._lookup(project, name, default_branch, browser, viewport)
            if baseline is not None:
                logger.debug(
                    f"Using '{default_branch}' baseline for '{name}' (no baseline on '{branch}')"
                )
                return baseline

        logger.debug(f"No baseline for '{name}' on '{branch}' in project {project.id}")
        return None

    def _lookup(
        self,
        project: ProjectModel,
        name: str,
        branch: str,
        browser: str | None,
        viewport: str | None,
    ) -> BaselineModel | None:
        try:
            return self.baselines.find_by_key(project.id, name, branch, browser, viewport)
        except BaselineLookupError as e:
            logger.warning(f"{e}; treating as no baseline")
            return None

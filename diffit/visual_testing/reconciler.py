"""
Directory Tree Reconciler

Pairs screenshot files between a base tree and a feature tree for the
archive workflow. Files found on both sides become comparison pairs; files
found on one side only become one-sided entries (removed or added) that are
reported but never diffed.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from diffit.core.exceptions import DirectoryReadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonPair:
    """
    One reconciliation entry.

    Attributes:
        base_path: File in the base tree, None when the file was added
        feature_path: File in the feature tree, None when the file was removed
        diff_name: Path relative to the tree roots; set on matched pairs only
    """

    base_path: Path | None = None
    feature_path: Path | None = None
    diff_name: str | None = None

    @property
    def is_matched(self) -> bool:
        return self.base_path is not None and self.feature_path is not None

    @property
    def is_added(self) -> bool:
        return self.base_path is None and self.feature_path is not None

    @property
    def is_removed(self) -> bool:
        return self.base_path is not None and self.feature_path is None


@dataclass(frozen=True)
class _Listing:
    files: frozenset[str]
    dirs: frozenset[str]


class DirectoryTreeReconciler:
    """
    Recursively matches files between two directory trees.

    Traversal is depth-first over an explicit worklist: a directory's files
    are emitted before its subdirectories, and subdirectories are visited in
    name order, so the output is deterministic for a given pair of trees.
    """

    def reconcile(self, base_dir: Path, feature_dir: Path) -> list[ComparisonPair]:
        """
        Reconcile two trees.

        Args:
            base_dir: Root of the accepted screenshots
            feature_dir: Root of the candidate screenshots

        Returns:
            Deduplicated list of comparison pairs

        Raises:
            DirectoryReadError: If a root is not a listable directory, or a
                nested directory exists but cannot be listed
        """
        base_dir = Path(base_dir)
        feature_dir = Path(feature_dir)

        for root in (base_dir, feature_dir):
            if not root.is_dir():
                raise DirectoryReadError(str(root), "not a directory")

        results: list[ComparisonPair] = []
        worklist: list[PurePosixPath] = [PurePosixPath()]

        while worklist:
            relative = worklist.pop()
            base_listing = self._list(base_dir, relative)
            feature_listing = self._list(feature_dir, relative)

            for name in sorted(base_listing.files | feature_listing.files):
                results.append(
                    self._pair(base_dir, feature_dir, relative / name, base_listing, feature_listing)
                )

            # Reverse so the first name in order is popped next
            for name in sorted(base_listing.dirs | feature_listing.dirs, reverse=True):
                worklist.append(relative / name)

        pairs = list(dict.fromkeys(results))

        logger.info(
            f"Reconciled {base_dir} against {feature_dir}: {len(pairs)} entries "
            f"({sum(p.is_matched for p in pairs)} matched, "
            f"{sum(p.is_added for p in pairs)} added, "
            f"{sum(p.is_removed for p in pairs)} removed)"
        )

        return pairs

    def _pair(
        self,
        base_dir: Path,
        feature_dir: Path,
        relative: PurePosixPath,
        base_listing: _Listing,
        feature_listing: _Listing,
    ) -> ComparisonPair:
        in_base = relative.name in base_listing.files
        in_feature = relative.name in feature_listing.files

        if in_base and in_feature:
            return ComparisonPair(
                base_path=base_dir / relative,
                feature_path=feature_dir / relative,
                diff_name=relative.as_posix(),
            )
        if in_base:
            return ComparisonPair(base_path=base_dir / relative)
        return ComparisonPair(feature_path=feature_dir / relative)

    def _list(self, root: Path, relative: PurePosixPath) -> _Listing:
        """
        List a directory's files and subdirectories.

        A path that is absent (or is not a directory) on this side lists as
        empty so that one-sided subtrees still produce entries. Symbolic
        links are never descended into: a link to a directory is listed as
        a file, and a nested path reached through a link lists as empty.
        """
        directory = root / relative
        if not directory.is_dir() or _through_symlink(root, relative):
            return _Listing(frozenset(), frozenset())

        files = set()
        dirs = set()
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.is_dir(follow_symlinks=False):
                        dirs.add(entry.name)
                    else:
                        files.add(entry.name)
        except OSError as e:
            raise DirectoryReadError(str(directory), str(e)) from e
        return _Listing(frozenset(files), frozenset(dirs))


def _through_symlink(root: Path, relative: PurePosixPath) -> bool:
    current = root
    for part in relative.parts:
        current = current / part
        if current.is_symlink():
            return True
    return False

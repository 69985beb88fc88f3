"""
Tests for directory tree reconciliation

Tests pairing of files between a base and a feature tree, one-sided
entries, nested subtrees and listing failures.
"""

import os

import pytest

from diffit.core.exceptions import DirectoryReadError
from diffit.visual_testing.reconciler import ComparisonPair, DirectoryTreeReconciler


def touch(root, relative, content=b"x"):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


@pytest.fixture
def trees(tmp_path):
    base = tmp_path / "base"
    feature = tmp_path / "feature"
    base.mkdir()
    feature.mkdir()
    return base, feature


class TestFlatTrees:
    """Test reconciliation of trees without subdirectories"""

    def test_shared_file_becomes_pair(self, trees):
        """Test that a file present on both sides is paired"""
        base, feature = trees
        touch(base, "home.png")
        touch(feature, "home.png")

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        assert pairs == [
            ComparisonPair(
                base_path=base / "home.png",
                feature_path=feature / "home.png",
                diff_name="home.png",
            )
        ]
        assert pairs[0].is_matched

    def test_one_sided_files(self, trees):
        """Test that files on one side only are reported as removed or added"""
        base, feature = trees
        touch(base, "a.png")
        touch(base, "b.png")
        touch(feature, "b.png")
        touch(feature, "c.png")

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        assert len(pairs) == 3
        removed = [p for p in pairs if p.is_removed]
        added = [p for p in pairs if p.is_added]
        matched = [p for p in pairs if p.is_matched]

        assert removed == [ComparisonPair(base_path=base / "a.png")]
        assert added == [ComparisonPair(feature_path=feature / "c.png")]
        assert [p.diff_name for p in matched] == ["b.png"]
        assert removed[0].diff_name is None
        assert added[0].diff_name is None

    def test_empty_trees(self, trees):
        """Test that two empty trees yield nothing"""
        base, feature = trees

        assert DirectoryTreeReconciler().reconcile(base, feature) == []


class TestNestedTrees:
    """Test recursion into subdirectories"""

    def test_nested_pairs_use_relative_diff_name(self, trees):
        """Test that nested pairs are named by their path relative to the roots"""
        base, feature = trees
        touch(base, "pages/settings/profile.png")
        touch(feature, "pages/settings/profile.png")

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        assert len(pairs) == 1
        assert pairs[0].diff_name == "pages/settings/profile.png"
        assert pairs[0].base_path == base / "pages" / "settings" / "profile.png"

    def test_subtree_on_one_side_only(self, trees):
        """Test that every file of a one-sided subtree yields one entry"""
        base, feature = trees
        touch(feature, "new/one.png")
        touch(feature, "new/deeper/two.png")
        touch(base, "old/three.png")

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        added = sorted(p.feature_path.name for p in pairs if p.is_added)
        removed = [p.base_path.name for p in pairs if p.is_removed]
        assert added == ["one.png", "two.png"]
        assert removed == ["three.png"]
        assert not any(p.is_matched for p in pairs)

    def test_files_before_subdirectories(self, trees):
        """Test that a directory's files are emitted before its subdirectories"""
        base, feature = trees
        for tree in trees:
            touch(tree, "z.png")
            touch(tree, "a/inner.png")
            touch(tree, "b/inner.png")

        names = [p.diff_name for p in DirectoryTreeReconciler().reconcile(base, feature)]

        assert names == ["z.png", "a/inner.png", "b/inner.png"]

    def test_file_and_directory_with_same_name(self, trees):
        """Test that a file on one side and a directory on the other are not paired"""
        base, feature = trees
        touch(base, "shot")
        touch(feature, "shot/inner.png")

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        assert ComparisonPair(base_path=base / "shot") in pairs
        assert ComparisonPair(feature_path=feature / "shot" / "inner.png") in pairs
        assert len(pairs) == 2


class TestReconcileProperties:
    """Test determinism and error handling"""

    def test_idempotent_without_duplicates(self, trees):
        """Test that reconciling twice gives the same list with no duplicates"""
        base, feature = trees
        for relative in ("a.png", "x/b.png", "x/y/c.png"):
            touch(base, relative)
            touch(feature, relative)
        touch(base, "gone.png")

        reconciler = DirectoryTreeReconciler()
        first = reconciler.reconcile(base, feature)
        second = reconciler.reconcile(base, feature)

        assert first == second
        assert len(first) == len(set(first)) == 4

    def test_missing_root_raises(self, tmp_path, trees):
        """Test that a missing root directory is an error"""
        base, _ = trees

        with pytest.raises(DirectoryReadError):
            DirectoryTreeReconciler().reconcile(base, tmp_path / "does-not-exist")

    def test_root_that_is_a_file_raises(self, tmp_path, trees):
        """Test that a root which is a regular file is an error"""
        base, _ = trees
        not_a_dir = touch(tmp_path, "file.png")

        with pytest.raises(DirectoryReadError):
            DirectoryTreeReconciler().reconcile(not_a_dir, base)

    def test_unreadable_nested_directory_raises(self, trees, monkeypatch):
        """Test that a nested directory that exists but cannot be listed is an error"""
        base, feature = trees
        touch(base, "a.png")
        touch(base, "locked/b.png")
        touch(feature, "a.png")
        locked = base / "locked"
        real_scandir = os.scandir

        def scandir(path):
            if os.fspath(path) == os.fspath(locked):
                raise PermissionError(13, "Permission denied", os.fspath(path))
            return real_scandir(path)

        monkeypatch.setattr(os, "scandir", scandir)

        with pytest.raises(DirectoryReadError) as error:
            DirectoryTreeReconciler().reconcile(base, feature)

        assert error.value.path == str(locked)


class TestSymlinks:
    """Test that symbolic links are not followed"""

    def test_cyclic_link_is_not_descended(self, trees):
        """Test that a link back to an ancestor is listed once as a file"""
        base, feature = trees
        touch(base, "a/x.png")
        touch(feature, "a/x.png")
        (base / "a" / "loop").symlink_to(base, target_is_directory=True)

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        assert pairs == [
            ComparisonPair(base_path=base / "a" / "loop"),
            ComparisonPair(base / "a" / "x.png", feature / "a" / "x.png", "a/x.png"),
        ]

    def test_linked_directory_on_one_side_is_not_listed(self, trees, tmp_path):
        """Test that a nested path reached through a link lists as empty"""
        base, feature = trees
        outside = tmp_path / "outside"
        touch(outside, "sub/x.png")
        touch(base, "shots/sub/x.png")
        (feature / "shots").symlink_to(outside, target_is_directory=True)

        pairs = DirectoryTreeReconciler().reconcile(base, feature)

        assert ComparisonPair(base_path=base / "shots" / "sub" / "x.png") in pairs
        assert ComparisonPair(feature_path=feature / "shots") in pairs
        assert not any(p.is_matched for p in pairs)

"""
Tests for build management

Tests build numbering, the status lifecycle, counters and deletion.
"""

import asyncio

import pytest

from diffit.core.exceptions import (
    InvalidStatusTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from diffit.storage.models import BuildStatus
from diffit.visual_testing.build_manager import BuildManager
from diffit.visual_testing.schemas import CreateBuildRequest, CreateSnapshotRequest
from diffit.visual_testing.snapshot_processor import SnapshotProcessor


@pytest.fixture
def manager(session, blob_store):
    return BuildManager(session, blob_store)


class TestCreateBuild:
    """Test build creation"""

    def test_build_numbers_increase_per_project(self, create_build):
        """Test that build numbers count up from 1 within a project"""
        first = create_build()
        second = create_build(branch="feature-x")

        assert first.build_number == 1
        assert second.build_number == 2
        assert first.status == "pending"
        assert first.total_snapshots == 0

    def test_unknown_project_raises(self, manager):
        """Test that a build needs an existing project"""
        with pytest.raises(ResourceNotFoundError):
            manager.create_build(CreateBuildRequest(project_id="missing", branch="main"))

    def test_commit_metadata_is_kept(self, create_build):
        """Test that commit details are stored on the build"""
        build = create_build(commit_sha="abc123", commit_message="Fix nav", pull_request_number=42)

        assert build.commit_sha == "abc123"
        assert build.to_dict()["pull_request_number"] == 42


class TestBuildLifecycle:
    """Test status transitions"""

    def test_happy_path_stamps_finished_at(self, manager, create_build):
        """Test pending -> processing -> completed"""
        build = create_build()

        manager.update_status(build.id, BuildStatus.PROCESSING)
        assert manager.get_build(build.id).finished_at is None

        completed = manager.update_status(build.id, "completed")
        assert completed.status == "completed"
        assert completed.finished_at is not None

    def test_pending_can_fail(self, manager, create_build):
        """Test that a build that never started may fail"""
        build = create_build()

        failed = manager.update_status(build.id, BuildStatus.FAILED)

        assert failed.status == "failed"
        assert failed.finished_at is not None

    def test_terminal_status_is_final(self, manager, create_build):
        """Test that a completed build cannot move again"""
        build = create_build()
        manager.update_status(build.id, BuildStatus.PROCESSING)
        manager.update_status(build.id, BuildStatus.COMPLETED)

        with pytest.raises(InvalidStatusTransitionError):
            manager.update_status(build.id, BuildStatus.PROCESSING)
        with pytest.raises(InvalidStatusTransitionError):
            manager.update_status(build.id, BuildStatus.FAILED)

    def test_same_status_is_noop(self, manager, create_build):
        """Test that re-applying the current status changes nothing"""
        build = create_build()
        manager.update_status(build.id, BuildStatus.FAILED)
        finished_at = manager.get_build(build.id).finished_at

        again = manager.update_status(build.id, BuildStatus.FAILED)

        assert again.finished_at == finished_at

    def test_skipping_processing_is_rejected(self, manager, create_build):
        """Test that pending cannot jump straight to completed"""
        build = create_build()

        with pytest.raises(InvalidStatusTransitionError):
            manager.update_status(build.id, BuildStatus.COMPLETED)

    def test_unknown_status_is_rejected(self, manager, create_build):
        """Test that an unknown status string is a validation error"""
        build = create_build()

        with pytest.raises(ValidationError):
            manager.update_status(build.id, "archived")

    def test_finalize_from_pending(self, manager, create_build):
        """Test that finalize completes a pending build"""
        build = create_build()

        finalized = manager.finalize(build.id)

        assert finalized.status == "completed"


class TestBuildQueries:
    """Test listings, counters and deletion"""

    def test_latest_build_defaults_to_default_branch(self, manager, project, create_build):
        """Test that the latest build lookup uses the project's default branch"""
        create_build(branch="main")
        latest_main = create_build(branch="main")
        create_build(branch="feature-x")

        assert manager.get_latest_build(project.id).id == latest_main.id
        assert manager.get_latest_build(project.id, "nope") is None

    def test_list_builds_newest_first(self, manager, project, create_build):
        """Test that builds list by descending build number with pagination"""
        for _ in range(3):
            create_build()
        create_build(branch="feature-x")

        page = manager.list_builds(project.id, per_page=2)
        assert [b.build_number for b in page.items] == [4, 3]
        assert page.total == 4
        assert page.total_pages == 2

        main_only = manager.list_builds(project.id, branch="main")
        assert main_only.total == 3

    def test_stats_after_terminal_status(self, session, blob_store, manager, create_build, make_png):
        """Test that counters can be recomputed on a completed build"""
        build = create_build()
        manager.finalize(build.id)
        processor = SnapshotProcessor(session, blob_store)
        asyncio.run(
            processor.ingest(CreateSnapshotRequest(build_id=build.id, name="late"), make_png())
        )

        stats = manager.update_stats(build.id)

        assert stats.status == "completed"
        assert stats.total_snapshots == 1

    def test_changed_snapshots_include_new(self, session, blob_store, manager, create_build, make_png):
        """Test that snapshots without a baseline count as changed for review"""
        build = create_build()
        processor = SnapshotProcessor(session, blob_store)
        asyncio.run(processor.ingest(CreateSnapshotRequest(build_id=build.id, name="b"), make_png()))
        asyncio.run(processor.ingest(CreateSnapshotRequest(build_id=build.id, name="a"), make_png()))

        changed = manager.list_changed_snapshots(build.id)
        listed = manager.list_snapshots(build.id, review_status="unreviewed")

        assert [s.name for s in changed] == ["a", "b"]
        assert listed.total == 2
        assert manager.get_build(build.id).changed_snapshots == 0

    def test_delete_build_removes_files(self, session, blob_store, manager, create_build, make_png):
        """Test that deleting a build removes its snapshots and stored images"""
        build = create_build()
        processor = SnapshotProcessor(session, blob_store)
        snapshot = asyncio.run(
            processor.ingest(CreateSnapshotRequest(build_id=build.id, name="home"), make_png())
        )
        path = snapshot.comparison_image_path
        snapshot_id = snapshot.id

        manager.delete_build(build.id)

        assert not blob_store.exists(path)
        assert processor.snapshots.get(snapshot_id) is None
        with pytest.raises(ResourceNotFoundError):
            manager.get_build(build.id)

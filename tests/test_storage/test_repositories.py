"""
Tests for the SQLAlchemy repositories

Tests pagination, counters, the baseline upsert and database helpers.
"""

import pytest

from diffit.core.exceptions import ResourceNotFoundError
from diffit.storage.database import Database
from diffit.storage.models import make_variant_key
from diffit.storage.repositories import (
    MAX_PER_PAGE,
    BaselineRepository,
    BuildRepository,
    PaginationParams,
    SnapshotRepository,
)


class TestPaginationParams:
    """Test pagination normalization"""

    @pytest.mark.parametrize(
        "page, per_page, expected",
        [
            (None, None, (1, 20)),
            (0, 0, (1, 20)),
            (-3, 10, (1, 10)),
            (3, 500, (3, MAX_PER_PAGE)),
        ],
    )
    def test_create(self, page, per_page, expected):
        """Test defaults and limits"""
        params = PaginationParams.create(page, per_page)

        assert (params.page, params.per_page) == expected

    def test_offset(self):
        """Test that the offset skips previous pages"""
        assert PaginationParams.create(3, 25).offset == 50


class TestVariantKey:
    """Test the encoded baseline key"""

    def test_unset_differs_from_empty(self):
        """Test that None and empty string produce different keys"""
        assert make_variant_key("p", "home", "main", None, None) != make_variant_key(
            "p", "home", "main", "", ""
        )


class TestBuildRepository:
    """Test build counters"""

    def test_update_stats_counts_rows(self, session, project, create_build):
        """Test that counters are recomputed from snapshot rows"""
        build = create_build()
        snapshots = SnapshotRepository(session)
        a = snapshots.create(build.id, "a")
        b = snapshots.create(build.id, "b")
        snapshots.create(build.id, "c")
        snapshots.update_images(a, diff_percentage=3.5)
        snapshots.update_images(b, diff_percentage=0.0)
        snapshots.set_review(b, "approved", "alice")

        stats = BuildRepository(session).update_stats(build.id)

        assert (stats.total_snapshots, stats.changed_snapshots, stats.approved_snapshots) == (3, 1, 1)

    def test_update_stats_is_idempotent(self, session, create_build):
        """Test that repeated recomputation converges"""
        build = create_build()
        SnapshotRepository(session).create(build.id, "a")
        builds = BuildRepository(session)

        first = builds.update_stats(build.id).total_snapshots
        second = builds.update_stats(build.id).total_snapshots

        assert first == second == 1

    def test_update_stats_unknown_build(self, session):
        """Test that recomputing a missing build raises"""
        with pytest.raises(ResourceNotFoundError):
            BuildRepository(session).update_stats("missing")


class TestSnapshotRepository:
    """Test snapshot updates"""

    def test_update_images_keeps_unset_fields(self, session, create_build):
        """Test that None arguments leave existing values in place"""
        build = create_build()
        snapshots = SnapshotRepository(session)
        snapshot = snapshots.create(build.id, "home")
        snapshots.update_images(snapshot, comparison_image_path="p/comparisons/x.png")

        snapshots.update_images(snapshot, diff_percentage=1.5)

        assert snapshot.comparison_image_path == "p/comparisons/x.png"
        assert snapshot.diff_percentage == 1.5


class TestBaselineRepository:
    """Test the baseline index"""

    def test_upsert_inserts_then_updates(self, session, project):
        """Test that one variant key has at most one baseline"""
        baselines = BaselineRepository(session)

        first = baselines.upsert(project.id, "home", "main", "p/baselines/1.png", width=10, height=10)
        second = baselines.upsert(project.id, "home", "main", "p/baselines/2.png", width=20, height=10)
        session.commit()

        assert first.id == second.id
        assert second.image_path == "p/baselines/2.png"
        assert second.width == 20
        assert baselines.list_by_project(project.id).total == 1

    def test_find_by_key_distinguishes_discriminators(self, session, project):
        """Test that browser and viewport are part of the key"""
        baselines = BaselineRepository(session)
        plain = baselines.upsert(project.id, "home", "main", "a.png")
        chrome = baselines.upsert(project.id, "home", "main", "b.png", browser="chrome")

        assert baselines.find_by_key(project.id, "home", "main").id == plain.id
        assert baselines.find_by_key(project.id, "home", "main", browser="chrome").id == chrome.id
        assert baselines.find_by_key(project.id, "home", "main", browser="chrome", viewport="x") is None


class TestDatabase:
    """Test database setup helpers"""

    def test_verify_schema(self, tmp_path):
        """Test that a fresh database has every table"""
        database = Database(tmp_path / "nested" / "fresh.db")

        assert database.verify_schema()
        assert (tmp_path / "nested" / "fresh.db").exists()
        database.dispose()

    def test_session_scope_rolls_back(self, database, project):
        """Test that an error inside a session scope discards its changes"""
        with pytest.raises(RuntimeError):
            with database.session_scope() as session:
                BuildRepository(session).create(project.id, "main")
                raise RuntimeError("boom")

        with database.session_scope() as session:
            assert BuildRepository(session).list_by_project(project.id).total == 0

    def test_get_database_uses_settings(self, tmp_path, monkeypatch):
        """Test that the shared database lives at the configured path"""
        from diffit.storage import database as database_module

        monkeypatch.setattr(database_module, "_database", None)

        db = database_module.get_database()

        assert db is database_module.get_database()
        assert db.database_path == tmp_path / "data" / "diffit.db"
        db.dispose()

"""
Shared fixtures: isolated settings, a temporary SQLite database, a
filesystem blob store and PNG factories.
"""

import io
import struct
import zlib

import pytest
from PIL import Image

from diffit.core import config
from diffit.storage.blob_store import FileBlobStore
from diffit.storage.database import Database
from diffit.visual_testing.build_manager import BuildManager
from diffit.visual_testing.project_manager import ProjectManager
from diffit.visual_testing.schemas import CreateBuildRequest, CreateProjectRequest

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temporary data directory and reset the singleton"""
    for name in (
        "DIFFIT_DATABASE_PATH",
        "DIFFIT_STORAGE_PATH",
        "DIFFIT_DIFF_THRESHOLD",
        "DIFFIT_DEFAULT_BRANCH",
        "DIFFIT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DIFFIT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setattr(config, "_settings", None)
    yield
    monkeypatch.setattr(config, "_settings", None)


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "diffit-test.db")
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    session = database.get_session()
    yield session
    session.close()


@pytest.fixture
def blob_store(tmp_path):
    return FileBlobStore(tmp_path / "storage")


@pytest.fixture
def make_png():
    """Factory for encoded PNGs: a solid image with optional painted pixels"""

    def _make_png(width=10, height=10, color=WHITE, pixels=None):
        image = Image.new("RGBA", (width, height), color)
        for (x, y), value in (pixels or {}).items():
            image.putpixel((x, y), value)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    return _make_png


@pytest.fixture
def project(session, blob_store):
    """A project whose default branch is main"""
    manager = ProjectManager(session, blob_store)
    return manager.create_project(
        CreateProjectRequest(name="Web App", slug="web-app", default_branch="main")
    )


@pytest.fixture
def create_build(session, blob_store, project):
    """Factory for builds of the project fixture"""
    manager = BuildManager(session, blob_store)

    def _create_build(branch="main", **kwargs):
        return manager.create_build(
            CreateBuildRequest(project_id=project.id, branch=branch, **kwargs)
        )

    return _create_build


def _png_chunk(chunk_type, data):
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


@pytest.fixture
def make_broken_png():
    """
    Factory for PNGs with a valid header whose image data continues in a
    chunk with a corrupt type, which Pillow reports as a broken PNG file.
    """

    def _make_broken_png(width=40, height=40):
        rows = b"".join(b"\x00" + b"\x7f" * (width * 3) for _ in range(height))
        compressed = zlib.compress(rows)
        header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
        return (
            b"\x89PNG\r\n\x1a\n"
            + _png_chunk(b"IHDR", header)
            + _png_chunk(b"IDAT", compressed[:4])
            + _png_chunk(b"\x00\x00\x00\x00", compressed[4:])
            + _png_chunk(b"IEND", b"")
        )

    return _make_broken_png

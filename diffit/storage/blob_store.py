"""
Filesystem blob store

Stores images under ``<root>/<project_id>/<category dir>/<filename>`` and
hands back paths relative to the root, which is what the database records.
"""

import logging
import shutil
import uuid
from pathlib import Path, PurePosixPath

from diffit.core.exceptions import BlobNotFoundError, ValidationError
from diffit.core.interfaces import BlobCategory

logger = logging.getLogger(__name__)

CATEGORY_DIRS = {
    BlobCategory.BASELINE: "baselines",
    BlobCategory.SNAPSHOT_COMPARISON: "comparisons",
    BlobCategory.SNAPSHOT_DIFF: "diffs",
}


def unique_filename(filename: str) -> str:
    """Replace a filename's stem with a UUID, keeping its extension"""
    suffix = PurePosixPath(filename).suffix or ".png"
    return f"{uuid.uuid4()}{suffix}"


class FileBlobStore:
    """
    Path-addressable byte storage on the local filesystem

    Filenames may contain forward slashes; intermediate directories are
    created on save.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _relative(self, project_id: str, category: BlobCategory, filename: str) -> str:
        relative = PurePosixPath(project_id) / CATEGORY_DIRS[BlobCategory(category)] / filename
        if ".." in relative.parts or relative.is_absolute():
            raise ValidationError(f"Invalid storage filename: {filename}")
        return relative.as_posix()

    def full_path(self, relative_path: str) -> Path:
        """Resolve a relative path to its filesystem location"""
        return self.root / relative_path

    def save(self, project_id: str, category: BlobCategory, filename: str, data: bytes) -> str:
        """
        Store bytes and return the relative path

        An existing file with the same name is overwritten.
        """
        relative = self._relative(project_id, category, filename)
        path = self.full_path(relative)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            path.write_bytes(data)
        except OSError:
            path.unlink(missing_ok=True)
            raise

        logger.debug(f"Stored {len(data)} bytes at {relative}")
        return relative

    def get(self, relative_path: str) -> bytes:
        """Read stored bytes"""
        path = self.full_path(relative_path)
        if not path.is_file():
            raise BlobNotFoundError(relative_path)
        return path.read_bytes()

    def exists(self, relative_path: str) -> bool:
        """Check if a stored file exists"""
        return self.full_path(relative_path).is_file()

    def delete(self, relative_path: str) -> None:
        """Remove a stored file; missing files are ignored"""
        self.full_path(relative_path).unlink(missing_ok=True)

    def copy(
        self,
        src_relative_path: str,
        project_id: str,
        category: BlobCategory,
        filename: str,
    ) -> str:
        """Copy a stored file into another category under a unique name"""
        return self.save(project_id, category, unique_filename(filename), self.get(src_relative_path))

    def delete_project(self, project_id: str) -> None:
        """Remove every stored file of a project"""
        if not project_id:
            raise ValidationError("A project id is required to delete project files")
        project_dir = self.full_path(project_id)
        if project_dir.exists():
            shutil.rmtree(project_dir)
            logger.info(f"Deleted stored files for project {project_id}")

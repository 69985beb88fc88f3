"""
Core interfaces and protocols

Defines the collaborator contracts the reconciliation engine depends on,
so decoders, comparators, encoders and storage can be injected.
"""

from enum import Enum
from pathlib import Path
from typing import Protocol

from PIL import Image


class BlobCategory(str, Enum):
    """Storage categories for stored images"""

    BASELINE = "baseline"
    SNAPSHOT_COMPARISON = "snapshot-comparison"
    SNAPSHOT_DIFF = "snapshot-diff"


class IImageDecoder(Protocol):
    """Protocol for image decoders"""

    def decode(self, data: bytes) -> Image.Image:
        """
        Decode raw bytes into an image

        Raises:
            DecodeError: If the data is corrupt or in an unsupported format
        """
        ...


class IImageComparator(Protocol):
    """Protocol for pixel comparators"""

    def compare(self, image_a: Image.Image, image_b: Image.Image, threshold: float):
        """
        Compare two decoded images

        Args:
            image_a: Base image
            image_b: Comparison image
            threshold: Per-pixel fractional tolerance in [0, 1]

        Returns:
            Object with ``equal``, ``differing_pixel_count`` and ``visual_diff``
        """
        ...


class IImageEncoder(Protocol):
    """Protocol for lossless image encoders"""

    def encode(self, image: Image.Image) -> bytes:
        """Encode an image to bytes"""
        ...


class IBlobStore(Protocol):
    """Protocol for path-addressable image storage"""

    def save(self, project_id: str, category: BlobCategory, filename: str, data: bytes) -> str:
        """Store bytes and return the relative path"""
        ...

    def get(self, relative_path: str) -> bytes:
        """Read stored bytes"""
        ...

    def delete(self, relative_path: str) -> None:
        """Remove a stored file (missing files are ignored)"""
        ...

    def copy(
        self,
        src_relative_path: str,
        project_id: str,
        category: BlobCategory,
        filename: str,
    ) -> str:
        """Copy a stored file into another category and return the new path"""
        ...

    def exists(self, relative_path: str) -> bool:
        """Check if a stored file exists"""
        ...

    def full_path(self, relative_path: str) -> Path:
        """Resolve a relative path to its filesystem location"""
        ...

    def delete_project(self, project_id: str) -> None:
        """Remove every stored file of a project"""
        ...

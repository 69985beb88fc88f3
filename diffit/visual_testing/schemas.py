"""
Request models

Pydantic models validating input to the managers.
"""

from pydantic import BaseModel, Field, field_validator

from diffit.storage.models import ReviewStatus


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CreateProjectRequest(BaseModel):
    """Request to create a project."""
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    repository_url: str | None = None
    default_branch: str | None = None


class UpdateProjectRequest(BaseModel):
    """Request to update a project; unset fields are left unchanged."""
    name: str | None = Field(default=None, min_length=1, max_length=255)
    repository_url: str | None = None
    default_branch: str | None = Field(default=None, min_length=1, max_length=100)


class CreateBuildRequest(BaseModel):
    """Request to start a build."""
    project_id: str
    branch: str = Field(..., min_length=1, max_length=255)
    commit_sha: str | None = Field(default=None, max_length=40)
    commit_message: str | None = None
    pull_request_number: int | None = None


class CreateSnapshotRequest(BaseModel):
    """Request to register a snapshot within a build."""
    build_id: str
    name: str = Field(..., min_length=1, max_length=500)
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    browser: str | None = None
    viewport: str | None = None

    @field_validator("browser", "viewport")
    @classmethod
    def blank_is_unset(cls, v: str | None) -> str | None:
        """An empty discriminator is the same as no discriminator"""
        return _blank_to_none(v)


class ReviewRequest(BaseModel):
    """Request to review one snapshot."""
    review_status: ReviewStatus
    reviewed_by: str = Field(..., min_length=1, max_length=255)

    @field_validator("review_status")
    @classmethod
    def is_decision(cls, v: ReviewStatus) -> ReviewStatus:
        if v == ReviewStatus.UNREVIEWED:
            raise ValueError("review_status must be 'approved' or 'rejected'")
        return v


class BatchReviewRequest(ReviewRequest):
    """Request to review several snapshots with the same decision."""
    snapshot_ids: list[str] = Field(..., min_length=1)

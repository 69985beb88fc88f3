"""
Project Manager

CRUD operations for projects. Deleting a project removes its builds,
snapshots and baselines together with every stored image.
"""

import logging

from sqlalchemy.orm import Session

from diffit.core.config import get_settings
from diffit.core.exceptions import ValidationError
from diffit.core.interfaces import IBlobStore
from diffit.storage.models import ProjectModel
from diffit.storage.repositories import Page, PaginationParams, ProjectRepository
from diffit.visual_testing.schemas import CreateProjectRequest, UpdateProjectRequest

logger = logging.getLogger(__name__)


class ProjectManager:
    """Manages visual testing projects."""

    def __init__(self, session: Session, blob_store: IBlobStore):
        self.session = session
        self.blob_store = blob_store
        self.projects = ProjectRepository(session)

    def create_project(self, request: CreateProjectRequest) -> ProjectModel:
        """
        Create a project.

        Raises:
            ValidationError: If the slug is already taken
        """
        if self.projects.get_by_slug(request.slug):
            raise ValidationError(f"Project with slug '{request.slug}' already exists")

        project = self.projects.create(
            name=request.name,
            slug=request.slug,
            default_branch=request.default_branch or get_settings().default_branch,
            repository_url=request.repository_url,
        )
        self.session.commit()

        logger.info(f"Created project: {project.slug} (id={project.id})")
        return project

    def get_project(self, project_id: str) -> ProjectModel:
        return self.projects.require(project_id)

    def get_project_by_slug(self, slug: str) -> ProjectModel | None:
        return self.projects.get_by_slug(slug)

    def list_projects(self, page: int | None = None, per_page: int | None = None) -> Page:
        return self.projects.list(PaginationParams.create(page, per_page))

    def update_project(self, project_id: str, request: UpdateProjectRequest) -> ProjectModel:
        project = self.projects.require(project_id)
        self.projects.update(
            project,
            name=request.name,
            repository_url=request.repository_url,
            default_branch=request.default_branch,
        )
        self.session.commit()

        logger.info(f"Updated project: {project.slug} (default_branch={project.default_branch})")
        return project

    def delete_project(self, project_id: str) -> bool:
        """Delete a project, its rows and its stored images."""
        project = self.projects.require(project_id)
        slug = project.slug

        self.projects.delete(project)
        self.session.commit()

        try:
            self.blob_store.delete_project(project_id)
        except OSError as e:
            logger.warning(f"Failed to delete stored files for project {project_id}: {e}")

        logger.info(f"Deleted project: {slug}")
        return True

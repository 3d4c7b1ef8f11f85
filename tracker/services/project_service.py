import logging
from typing import Iterable

from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.cache.decorators import async_cached, to_cache_value
from tracker.cache.layer import PROJECTS, TASKS, CacheLayer
from tracker.core.exceptions import ResourceNotFoundError, UnauthorizedError
from tracker.models import Project, ProjectStatus, get_utc_now
from tracker.notifications.dispatcher import NotificationDispatcher
from tracker.repositories.project_repository import PROJECT_SORT_FIELDS, ProjectRepository
from tracker.schemas import PagedResponse, ProjectRequest, ProjectResponse
from tracker.services.access_policy import can_read, can_write
from tracker.services.paging import page_request
from tracker.services.user_service import UserService

logger = logging.getLogger(__name__)


def user_projects_key(email: str) -> str:
    return f"user:{email}"


class ProjectService:
    def __init__(self, session: AsyncSession, cache: CacheLayer, dispatcher: NotificationDispatcher):
        self.session = session
        self.cache = cache
        self.dispatcher = dispatcher
        self.projects = ProjectRepository(session)
        self.users = UserService(session, cache)

    async def create_project(self, request: ProjectRequest, actor_email: str) -> ProjectResponse:
        logger.info("Create project request received by user=%s", actor_email)

        owner = await self.users.get_entity(actor_email)
        project = Project(
            name=request.name,
            description=request.description,
            owner=owner,
            members=[],
            status=request.status or ProjectStatus.ACTIVE,
        )
        if request.member_ids:
            project.members = await self.users.find_all_by_ids(request.member_ids)
            logger.debug("Added %d members to project", len(project.members))

        await self.projects.save(project)
        await self.session.commit()
        logger.info("Project created successfully id=%s owner=%s", project.id, actor_email)

        response = await self._to_response(project)
        await self.cache.evict_all(PROJECTS)
        self.dispatcher.send_project_update(project.id, "CREATE", response, actor_email)
        return response

    async def get_user_projects(self, actor_email: str) -> list[ProjectResponse]:
        logger.info("Fetching projects for user=%s", actor_email)
        await self.users.get_by_email(actor_email)
        return await self._load_user_projects(actor_email)

    @async_cached(PROJECTS, user_projects_key, model=list[ProjectResponse])
    async def _load_user_projects(self, actor_email: str) -> list[ProjectResponse]:
        user = await self.users.get_by_email(actor_email)
        projects = await self.projects.find_all_for_user(user.id)
        counts = await self.projects.count_tasks(p.id for p in projects)
        logger.debug("Found %d projects for user=%s", len(projects), actor_email)
        return [ProjectResponse.from_entity(p, counts.get(p.id, 0)) for p in projects]

    async def get_project_by_id(self, project_id: int, actor_email: str) -> ProjectResponse:
        logger.info("Fetching project id=%s requested by user=%s", project_id, actor_email)

        project = await self._load_project(project_id)
        if project is None:
            logger.warning("Project not found id=%s", project_id)
            raise ResourceNotFoundError("Project", "id", project_id)

        user = await self.users.get_by_email(actor_email)
        if not can_read(project, user):
            logger.warning("Unauthorized access attempt: user=%s projectId=%s", actor_email, project_id)
            raise UnauthorizedError("You don't have access to this project")
        return project

    @async_cached(PROJECTS, lambda project_id: project_id, model=ProjectResponse)
    async def _load_project(self, project_id: int) -> ProjectResponse | None:
        project = await self.projects.find_by_id(project_id)
        if project is None:
            return None
        return await self._to_response(project)

    async def update_project(self, project_id: int, request: ProjectRequest, actor_email: str) -> ProjectResponse:
        logger.info("Update project request id=%s by user=%s", project_id, actor_email)

        project = await self._require_project(project_id)
        user = await self.users.get_by_email(actor_email)
        if not can_write(project, user):
            logger.warning("Unauthorized update attempt: user=%s projectId=%s", actor_email, project_id)
            raise UnauthorizedError("Only project owner can update this project")

        old_name = project.name
        affected = self._participant_emails(project)

        project.name = request.name
        project.description = request.description
        if request.status is not None:
            project.status = request.status
        if request.member_ids is not None:
            project.members = await self.users.find_all_by_ids(request.member_ids)
            logger.debug("Updated project members count=%d", len(project.members))
        project.updated_at = get_utc_now()

        await self.projects.save(project)
        await self.session.commit()
        logger.info("Project updated successfully id=%s", project_id)

        response = await self._to_response(project)
        await self.cache.put(PROJECTS, project_id, to_cache_value(response))
        await self._evict_user_lists(affected | self._participant_emails(project) | {actor_email})
        if project.name != old_name:
            # Task responses carry the project name.
            await self.cache.evict_all(TASKS)

        self.dispatcher.send_project_update(project_id, "UPDATE", response, actor_email)
        return response

    async def delete_project(self, project_id: int, actor_email: str) -> None:
        logger.info("Delete project request id=%s by user=%s", project_id, actor_email)

        project = await self._require_project(project_id)
        user = await self.users.get_by_email(actor_email)
        if not can_write(project, user):
            logger.warning("Unauthorized delete attempt: user=%s projectId=%s", actor_email, project_id)
            raise UnauthorizedError("Only project owner can delete this project")

        # Emitted from the pre-delete state; the row loses its identity once removed.
        response = await self._to_response(project)
        affected = self._participant_emails(project) | {actor_email}
        self.dispatcher.send_project_update(project_id, "DELETE", response, actor_email)

        await self.projects.delete(project)
        await self.session.commit()
        logger.info("Project deleted successfully id=%s", project_id)

        await self.cache.evict(PROJECTS, project_id)
        await self._evict_user_lists(affected)
        await self.cache.evict_all(TASKS)

    async def get_user_projects_paginated(
        self,
        actor_email: str,
        status: ProjectStatus | None = None,
        search: str | None = None,
        page: int = 0,
        size: int = 10,
        sort_by: str = "createdAt",
        sort_dir: str = "desc",
    ) -> PagedResponse[ProjectResponse]:
        logger.info(
            "Paginated project fetch user=%s page=%s size=%s status=%s search=%s",
            actor_email,
            page,
            size,
            status,
            search,
        )
        request = page_request(page, size, sort_by, sort_dir, PROJECT_SORT_FIELDS)
        user = await self.users.get_by_email(actor_email)

        result = await self.projects.search_for_user(user.id, status, search, request)
        logger.debug("Paginated result totalElements=%d", result.total)

        counts = await self.projects.count_tasks(p.id for p in result.items)
        content = [ProjectResponse.from_entity(p, counts.get(p.id, 0)) for p in result.items]
        return PagedResponse[ProjectResponse].of(content, result.page, result.size, result.total)

    async def _require_project(self, project_id: int) -> Project:
        project = await self.projects.find_by_id(project_id)
        if project is None:
            logger.warning("Project not found id=%s", project_id)
            raise ResourceNotFoundError("Project", "id", project_id)
        return project

    async def _to_response(self, project: Project) -> ProjectResponse:
        counts = await self.projects.count_tasks([project.id])
        return ProjectResponse.from_entity(project, counts.get(project.id, 0))

    @staticmethod
    def _participant_emails(project: Project) -> set[str]:
        return {project.owner.email, *(m.email for m in project.members)}

    async def _evict_user_lists(self, emails: Iterable[str]) -> None:
        for email in emails:
            await self.cache.evict(PROJECTS, user_projects_key(email))

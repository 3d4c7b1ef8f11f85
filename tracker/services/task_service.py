import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.cache.decorators import async_cached, to_cache_value
from tracker.cache.layer import PROJECTS, TASKS, CacheLayer
from tracker.core.config import Settings
from tracker.core.exceptions import BadRequestError, ResourceNotFoundError, UnauthorizedError
from tracker.models import Project, Task, TaskPriority, TaskStatus, get_utc_now
from tracker.notifications.dispatcher import SYSTEM_ACTOR, NotificationDispatcher
from tracker.repositories.project_repository import ProjectRepository
from tracker.repositories.task_repository import TASK_SORT_FIELDS, TaskRepository
from tracker.schemas import (
    NotificationMessage,
    PagedResponse,
    Severity,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from tracker.services.access_policy import can_read, can_write
from tracker.services.paging import page_request
from tracker.services.project_service import user_projects_key
from tracker.services.user_service import UserService

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(
        self,
        session: AsyncSession,
        cache: CacheLayer,
        dispatcher: NotificationDispatcher,
        settings: Settings,
    ):
        self.session = session
        self.cache = cache
        self.dispatcher = dispatcher
        self.enforce_project_access = settings.enforce_task_project_access
        self.tasks = TaskRepository(session)
        self.projects = ProjectRepository(session)
        self.users = UserService(session, cache)

    async def create_task(self, request: TaskCreate, actor_email: str) -> TaskResponse:
        logger.info(
            "Creating new task '%s' in project %s by user: %s",
            request.title,
            request.project_id,
            actor_email,
        )

        creator = await self.users.get_entity(actor_email)
        project = await self.projects.find_by_id(request.project_id)
        if project is None:
            raise ResourceNotFoundError("Project", "id", request.project_id)
        await self._check_project_access(project, actor_email, write=True)

        task = Task(
            title=request.title,
            description=request.description,
            project=project,
            created_by=creator,
            assignee=None,
            status=request.status or TaskStatus.TODO,
            priority=request.priority or TaskPriority.MEDIUM,
            due_date=request.due_date,
        )
        if request.assignee_id is not None:
            task.assignee = await self.users.get_entity_by_id(request.assignee_id, "Assignee")

        await self.tasks.save(task)
        await self.session.commit()
        logger.info("Task created successfully with ID: %s in project: %s", task.id, project.id)

        response = TaskResponse.from_entity(task)
        await self.cache.evict_all(TASKS)
        await self.cache.evict(PROJECTS, project.id)
        for email in {project.owner.email, *(m.email for m in project.members)}:
            await self.cache.evict(PROJECTS, user_projects_key(email))

        if task.assignee is not None:
            self._notify(
                task.assignee.email,
                "New Task Assigned",
                f"You have been assigned to task: {task.title}",
            )
        self.dispatcher.send_task_update(project.id, "CREATE", response, actor_email)
        return response

    async def get_task_by_id(self, task_id: int, actor_email: str | None = None) -> TaskResponse:
        logger.debug("Fetching task with ID: %s (checking cache first)", task_id)
        task = await self._load_task(task_id)
        if task is None:
            raise ResourceNotFoundError("Task", "id", task_id)
        if self.enforce_project_access:
            project = await self.projects.find_by_id(task.project_id)
            await self._check_project_access(project, actor_email, write=False)
        return task

    @async_cached(TASKS, lambda task_id: task_id, model=TaskResponse)
    async def _load_task(self, task_id: int) -> TaskResponse | None:
        task = await self.tasks.find_by_id(task_id)
        if task is None:
            return None
        return TaskResponse.from_entity(task)

    async def get_project_tasks(self, project_id: int, actor_email: str | None = None) -> list[TaskResponse]:
        if self.enforce_project_access:
            project = await self.projects.find_by_id(project_id)
            if project is None:
                raise ResourceNotFoundError("Project", "id", project_id)
            await self._check_project_access(project, actor_email, write=False)
        tasks = await self.tasks.find_by_project(project_id)
        return [TaskResponse.from_entity(t) for t in tasks]

    async def get_project_tasks_paginated(
        self,
        project_id: int | None = None,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        search: str | None = None,
        page: int = 0,
        size: int = 10,
        sort_by: str = "createdAt",
        sort_dir: str = "desc",
        actor_email: str | None = None,
    ) -> PagedResponse[TaskResponse]:
        request = page_request(page, size, sort_by, sort_dir, TASK_SORT_FIELDS)

        accessible_to = None
        if self.enforce_project_access:
            if project_id is not None:
                project = await self.projects.find_by_id(project_id)
                if project is None:
                    raise ResourceNotFoundError("Project", "id", project_id)
                await self._check_project_access(project, actor_email, write=False)
            else:
                accessible_to = (await self._require_actor(actor_email)).id

        result = await self.tasks.search(project_id, status, priority, search, request, accessible_to)
        content = [TaskResponse.from_entity(t) for t in result.items]
        return PagedResponse[TaskResponse].of(content, result.page, result.size, result.total)

    async def update_task(self, task_id: int, request: TaskUpdate, actor_email: str | None = None) -> TaskResponse:
        logger.info(
            "Updating task %s - status: %s, priority: %s",
            task_id,
            request.status.value if request.status else None,
            request.priority.value if request.priority else None,
        )

        task = await self._require_task(task_id)
        await self._check_project_access(task.project, actor_email, write=True)

        old_status = task.status
        old_assignee = task.assignee

        task.title = request.title
        task.description = request.description
        task.status = request.status or task.status
        task.priority = request.priority or task.priority
        task.due_date = request.due_date

        newly_assigned = None
        if request.assignee_id is not None:
            assignee = await self.users.get_entity_by_id(request.assignee_id, "Assignee")
            if old_assignee is None or old_assignee.id != assignee.id:
                newly_assigned = assignee
            task.assignee = assignee

        task.updated_at = get_utc_now()
        await self.tasks.save(task)
        await self.session.commit()

        response = TaskResponse.from_entity(task)
        await self.cache.put(TASKS, task_id, to_cache_value(response))
        await self.cache.evict_all(PROJECTS)

        if newly_assigned is not None:
            self._notify(
                newly_assigned.email,
                "Task Assigned",
                f"You have been assigned to task: {task.title}",
            )

        self.dispatcher.send_task_update(task.project_id, "UPDATE", response, SYSTEM_ACTOR)

        if old_status is not None and old_status != task.status and task.assignee is not None:
            self._notify(
                task.assignee.email,
                "Task Status Changed",
                f"Task '{task.title}' status changed to: {task.status.value}",
            )

        return response

    async def delete_task(self, task_id: int, actor_email: str | None = None) -> None:
        logger.info("Deleting task with ID: %s", task_id)

        task = await self._require_task(task_id)
        await self._check_project_access(task.project, actor_email, write=True)

        project_id = task.project_id
        title = task.title

        await self.tasks.delete(task)
        await self.session.commit()

        await self.cache.evict(TASKS, task_id)
        await self.cache.evict_all(PROJECTS)

        self.dispatcher.send_task_update(
            project_id,
            "DELETE",
            TaskResponse(id=task_id, title=title, project_id=project_id),
            SYSTEM_ACTOR,
        )

    async def _require_task(self, task_id: int) -> Task:
        task = await self.tasks.find_by_id(task_id)
        if task is None:
            raise ResourceNotFoundError("Task", "id", task_id)
        return task

    async def _require_actor(self, actor_email: str | None):
        if not actor_email:
            raise BadRequestError("An authenticated user is required for task operations")
        return await self.users.get_by_email(actor_email)

    async def _check_project_access(self, project: Project, actor_email: str | None, write: bool) -> None:
        """No-op unless enforce_task_project_access is on."""
        if not self.enforce_project_access:
            return
        user = await self._require_actor(actor_email)
        allowed = can_write(project, user) if write else can_read(project, user)
        if not allowed:
            logger.warning(
                "Unauthorized task access: user=%s projectId=%s write=%s", actor_email, project.id, write
            )
            raise UnauthorizedError("You don't have access to tasks of this project")

    def _notify(self, email: str, title: str, message: str) -> None:
        self.dispatcher.notify_user(
            email,
            NotificationMessage(title=title, message=message, type=Severity.INFO, user_id=email),
        )

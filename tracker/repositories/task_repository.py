from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.models import CLOSED_TASK_STATUSES, Project, ProjectMember, Task, TaskPriority, TaskStatus
from tracker.repositories.base import Page, PageRequest, paginate

TASK_SORT_FIELDS = {
    "id": Task.id,
    "title": Task.title,
    "status": Task.status,
    "priority": Task.priority,
    "due_date": Task.due_date,
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
}


class TaskRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, task_id: int) -> Task | None:
        return await self.session.get(Task, task_id)

    async def find_by_project(self, project_id: int) -> list[Task]:
        result = await self.session.exec(
            select(Task).where(Task.project_id == project_id).order_by(col(Task.created_at), col(Task.id))
        )
        return list(result.all())

    async def find_all(self) -> list[Task]:
        result = await self.session.exec(select(Task).order_by(col(Task.id)))
        return list(result.all())

    async def find_open_assigned_with_due_date(self) -> list[Task]:
        """Tasks a reminder could apply to: due date set, assigned, not completed or cancelled."""
        result = await self.session.exec(
            select(Task)
            .where(col(Task.due_date).is_not(None))
            .where(col(Task.assignee_id).is_not(None))
            .where(col(Task.status).not_in(CLOSED_TASK_STATUSES))
            .order_by(col(Task.due_date))
        )
        return list(result.all())

    async def search(
        self,
        project_id: int | None,
        status: TaskStatus | None,
        priority: TaskPriority | None,
        keyword: str | None,
        page: PageRequest,
        accessible_to: int | None = None,
    ) -> Page[Task]:
        statement = select(Task)
        if project_id is not None:
            statement = statement.where(Task.project_id == project_id)
        if status is not None:
            statement = statement.where(Task.status == status)
        if priority is not None:
            statement = statement.where(Task.priority == priority)
        if keyword:
            statement = statement.where(col(Task.title).icontains(keyword, autoescape=True))
        if accessible_to is not None:
            member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == accessible_to)
            readable = select(Project.id).where(
                or_(Project.owner_id == accessible_to, col(Project.id).in_(member_of))
            )
            statement = statement.where(col(Task.project_id).in_(readable))
        return await paginate(
            self.session, statement, page, col(TASK_SORT_FIELDS[page.sort_field]), col(Task.id)
        )

    async def save(self, task: Task) -> Task:
        self.session.add(task)
        await self.session.flush()
        return task

    async def delete(self, task: Task) -> None:
        await self.session.delete(task)
        await self.session.flush()

from typing import Iterable

from sqlalchemy import func
from sqlmodel import col, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.models import Project, ProjectMember, ProjectStatus, Task
from tracker.repositories.base import Page, PageRequest, paginate

PROJECT_SORT_FIELDS = {
    "id": Project.id,
    "name": Project.name,
    "status": Project.status,
    "created_at": Project.created_at,
    "updated_at": Project.updated_at,
}


def _visible_to(user_id: int):
    """Owner or member of the project."""
    member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    return or_(Project.owner_id == user_id, col(Project.id).in_(member_of))


class ProjectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, project_id: int) -> Project | None:
        return await self.session.get(Project, project_id)

    async def find_all_for_user(self, user_id: int) -> list[Project]:
        result = await self.session.exec(
            select(Project).where(_visible_to(user_id)).order_by(col(Project.created_at).desc(), col(Project.id).desc())
        )
        return list(result.all())

    async def search_for_user(
        self,
        user_id: int,
        status: ProjectStatus | None,
        keyword: str | None,
        page: PageRequest,
    ) -> Page[Project]:
        statement = select(Project).where(_visible_to(user_id))
        if status is not None:
            statement = statement.where(Project.status == status)
        if keyword:
            statement = statement.where(col(Project.name).icontains(keyword, autoescape=True))
        return await paginate(
            self.session, statement, page, col(PROJECT_SORT_FIELDS[page.sort_field]), col(Project.id)
        )

    async def count_tasks(self, project_ids: Iterable[int]) -> dict[int, int]:
        ids = set(project_ids)
        if not ids:
            return {}
        result = await self.session.exec(
            select(Task.project_id, func.count(col(Task.id)))
            .where(col(Task.project_id).in_(ids))
            .group_by(Task.project_id)
        )
        counts = {project_id: count for project_id, count in result.all()}
        return {project_id: counts.get(project_id, 0) for project_id in ids}

    async def save(self, project: Project) -> Project:
        self.session.add(project)
        await self.session.flush()
        return project

    async def delete(self, project: Project) -> None:
        """Deletes the project, its tasks and its membership rows."""
        tasks = await self.session.exec(select(Task).where(Task.project_id == project.id))
        for task in tasks.all():
            await self.session.delete(task)
        await self.session.delete(project)
        await self.session.flush()

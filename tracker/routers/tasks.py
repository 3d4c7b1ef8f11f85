from fastapi import APIRouter, Depends, Query, status

from tracker.deps import CurrentUser, get_task_service
from tracker.models import TaskPriority, TaskStatus
from tracker.schemas import PagedResponse, TaskCreate, TaskResponse, TaskUpdate
from tracker.services.task_service import TaskService

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    user_email: CurrentUser,
    service: TaskService = Depends(get_task_service),
):
    """Create a new task"""
    return await service.create_task(task_data, user_email)


@router.get("/search", response_model=PagedResponse[TaskResponse])
async def search_tasks(
    user_email: CurrentUser,
    project_id: int | None = Query(default=None, alias="projectId"),
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    search: str | None = None,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=100),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_dir: str = Query(default="desc", alias="sortDir"),
    service: TaskService = Depends(get_task_service),
):
    return await service.get_project_tasks_paginated(
        project_id, status, priority, search, page, size, sort_by, sort_dir, actor_email=user_email
    )


@router.get("/project/{project_id}", response_model=list[TaskResponse])
async def get_project_tasks(
    project_id: int,
    user_email: CurrentUser,
    service: TaskService = Depends(get_task_service),
):
    return await service.get_project_tasks(project_id, user_email)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, user_email: CurrentUser, service: TaskService = Depends(get_task_service)):
    """Get a specific task by ID"""
    return await service.get_task_by_id(task_id, user_email)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    task_data: TaskUpdate,
    user_email: CurrentUser,
    service: TaskService = Depends(get_task_service),
):
    return await service.update_task(task_id, task_data, user_email)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: int, user_email: CurrentUser, service: TaskService = Depends(get_task_service)):
    """Delete a task"""
    await service.delete_task(task_id, user_email)

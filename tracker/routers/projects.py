from fastapi import APIRouter, Depends, Query, status

from tracker.deps import CurrentUser, get_project_service
from tracker.models import ProjectStatus
from tracker.schemas import PagedResponse, ProjectRequest, ProjectResponse
from tracker.services.project_service import ProjectService

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: ProjectRequest,
    user_email: CurrentUser,
    service: ProjectService = Depends(get_project_service),
):
    """Create a project owned by the caller"""
    return await service.create_project(request, user_email)


@router.get("", response_model=list[ProjectResponse])
async def get_user_projects(user_email: CurrentUser, service: ProjectService = Depends(get_project_service)):
    """Projects the caller owns or is a member of"""
    return await service.get_user_projects(user_email)


@router.get("/search", response_model=PagedResponse[ProjectResponse])
async def search_projects(
    user_email: CurrentUser,
    status: ProjectStatus | None = None,
    search: str | None = None,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=100),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_dir: str = Query(default="desc", alias="sortDir"),
    service: ProjectService = Depends(get_project_service),
):
    return await service.get_user_projects_paginated(user_email, status, search, page, size, sort_by, sort_dir)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    user_email: CurrentUser,
    service: ProjectService = Depends(get_project_service),
):
    return await service.get_project_by_id(project_id, user_email)


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    request: ProjectRequest,
    user_email: CurrentUser,
    service: ProjectService = Depends(get_project_service),
):
    """Owner-only update of name, description, status and members"""
    return await service.update_project(project_id, request, user_email)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    user_email: CurrentUser,
    service: ProjectService = Depends(get_project_service),
):
    """Owner-only delete; removes the project's tasks too"""
    await service.delete_project(project_id, user_email)

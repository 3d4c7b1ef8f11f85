from typing import AsyncIterator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from tracker.cache.layer import CacheLayer
from tracker.core.config import Settings
from tracker.core.exceptions import AuthenticationError
from tracker.core.security import InvalidTokenError, decode_access_token
from tracker.jobs.scheduler import JobScheduler
from tracker.notifications.dispatcher import NotificationDispatcher
from tracker.services.auth_service import AuthService
from tracker.services.project_service import ProjectService
from tracker.services.task_service import TaskService

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


# Dependency for getting DB session
async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.session_factory() as session:
        yield session


def get_cache(request: Request) -> CacheLayer:
    return request.app.state.cache


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_scheduler(request: Request) -> JobScheduler:
    return request.app.state.scheduler


DbDep = Annotated[AsyncSession, Depends(get_db)]
CacheDep = Annotated[CacheLayer, Depends(get_cache)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]
SchedulerDep = Annotated[JobScheduler, Depends(get_scheduler)]


async def get_current_user_email(
    settings: SettingsDep,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    try:
        return decode_access_token(credentials.credentials, settings)
    except InvalidTokenError:
        raise AuthenticationError("Invalid or expired access token")


CurrentUser = Annotated[str, Depends(get_current_user_email)]


def get_auth_service(db: DbDep, settings: SettingsDep) -> AuthService:
    return AuthService(db, settings)


def get_project_service(db: DbDep, cache: CacheDep, dispatcher: DispatcherDep) -> ProjectService:
    return ProjectService(db, cache, dispatcher)


def get_task_service(db: DbDep, cache: CacheDep, dispatcher: DispatcherDep, settings: SettingsDep) -> TaskService:
    return TaskService(db, cache, dispatcher, settings)

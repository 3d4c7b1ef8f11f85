import math
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from tracker.models import (
    Project,
    ProjectStatus,
    Task,
    TaskPriority,
    TaskStatus,
    User,
    as_utc,
    get_utc_now,
)

T = TypeVar("T")


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# --------------------------------------------------------------------
# Auth
# --------------------------------------------------------------------
class RegisterRequest(APIModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1)


class LoginRequest(APIModel):
    email: EmailStr
    password: str = Field(min_length=1)


class AuthResponse(APIModel):
    token: str
    email: str
    full_name: str


class UserSummary(APIModel):
    """What the users cache holds for an email; never the credential hash."""

    id: int
    email: str
    full_name: str


# --------------------------------------------------------------------
# Projects
# --------------------------------------------------------------------
class ProjectRequest(APIModel):
    name: str = Field(min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    member_ids: list[int] | None = None
    status: ProjectStatus | None = None


class MemberDto(APIModel):
    id: int
    email: str
    full_name: str


class ProjectResponse(APIModel):
    id: int
    name: str
    description: str | None = None
    owner_id: int
    owner_email: str
    owner_name: str
    members: list[MemberDto] = []
    status: ProjectStatus
    task_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, project: Project, task_count: int = 0) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            owner_id=project.owner.id,
            owner_email=project.owner.email,
            owner_name=project.owner.full_name,
            members=[MemberDto(id=m.id, email=m.email, full_name=m.full_name) for m in project.members],
            status=project.status,
            task_count=task_count,
            created_at=as_utc(project.created_at),
            updated_at=as_utc(project.updated_at),
        )


# --------------------------------------------------------------------
# Tasks
# --------------------------------------------------------------------
class TaskCreate(APIModel):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    project_id: int
    assignee_id: int | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None


class TaskUpdate(APIModel):
    """Full replacement of the editable fields; project is fixed at creation."""

    title: str = Field(min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    assignee_id: int | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None


class UserRef(APIModel):
    id: int
    email: str
    full_name: str

    @classmethod
    def from_user(cls, user: User | None) -> "UserRef | None":
        if user is None:
            return None
        return cls(id=user.id, email=user.email, full_name=user.full_name)


class TaskResponse(APIModel):
    id: int
    title: str
    description: str | None = None
    project_id: int
    project_name: str | None = None
    assignee: UserRef | None = None
    created_by: UserRef | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            project_id=task.project_id,
            project_name=task.project.name if task.project else None,
            assignee=UserRef.from_user(task.assignee),
            created_by=UserRef.from_user(task.created_by),
            status=task.status,
            priority=task.priority,
            due_date=as_utc(task.due_date),
            created_at=as_utc(task.created_at),
            updated_at=as_utc(task.updated_at),
        )


# --------------------------------------------------------------------
# Paging
# --------------------------------------------------------------------
class PagedResponse(APIModel, Generic[T]):
    content: list[T]
    page_number: int
    page_size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool

    @classmethod
    def of(cls, content: list[T], page: int, size: int, total: int) -> "PagedResponse[T]":
        total_pages = math.ceil(total / size) if size > 0 else 0
        return cls(
            content=content,
            page_number=page,
            page_size=size,
            total_elements=total,
            total_pages=total_pages,
            first=page == 0,
            last=page + 1 >= total_pages,
        )


# --------------------------------------------------------------------
# Notifications
# --------------------------------------------------------------------
class Severity(str, Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class NotificationMessage(APIModel):
    """Direct message on a user's notification queue."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    message: str
    type: Severity = Severity.INFO
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=get_utc_now)


class ChannelMessage(APIModel):
    """Envelope for project topic and broadcast traffic."""

    type: str
    action: str
    payload: Any = None
    user_id: str | None = None
    project_id: int | None = None
    timestamp: datetime = Field(default_factory=get_utc_now)


# --------------------------------------------------------------------
# Scheduled jobs
# --------------------------------------------------------------------
class TaskReminder(APIModel):
    task_id: int
    task_title: str
    assignee_email: str
    assignee_name: str
    due_date: datetime
    priority: TaskPriority
    hours_until_due: int


class DailyReport(APIModel):
    report_date: date
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    overdue_tasks: int
    tasks_by_status: dict[str, int]
    tasks_by_priority: dict[str, int]

    @property
    def completion_rate(self) -> float:
        return self.completed_tasks * 100.0 / self.total_tasks if self.total_tasks > 0 else 0.0

    def summary(self) -> str:
        return (
            "📊 Daily Task Report\n\n"
            f"Total Tasks: {self.total_tasks}\n"
            f"✅ Completed: {self.completed_tasks} ({self.completion_rate:.1f}%)\n"
            f"⏳ Pending: {self.pending_tasks}\n"
            f"🚨 Overdue: {self.overdue_tasks}"
        )


class JobTriggerResponse(APIModel):
    message: str
    status: str = "completed"
    result: Any = None

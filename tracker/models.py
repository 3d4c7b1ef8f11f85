from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Column, Field, Relationship, SQLModel


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


CLOSED_TASK_STATUSES = (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class ProjectMember(SQLModel, table=True):
    """Link table between projects and their (non-owner) members"""

    __tablename__ = "project_members"

    project_id: int | None = Field(default=None, foreign_key="projects.id", primary_key=True)
    user_id: int | None = Field(default=None, foreign_key="users.id", primary_key=True)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    password: str = Field(max_length=255)
    full_name: str = Field(max_length=255)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(min_length=3, max_length=100, index=True)
    description: str | None = Field(default=None, max_length=1000)
    status: ProjectStatus = Field(default=ProjectStatus.ACTIVE)
    owner_id: int = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    owner: User | None = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    members: list[User] = Relationship(
        link_model=ProjectMember, sa_relationship_kwargs={"lazy": "selectin"}
    )


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(min_length=3, max_length=200, index=True)
    description: str | None = Field(default=None, max_length=2000)
    status: TaskStatus = Field(default=TaskStatus.TODO, index=True)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    due_date: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    project_id: int = Field(foreign_key="projects.id", index=True)
    assignee_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    created_by_id: int = Field(foreign_key="users.id")
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    project: Project | None = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    assignee: User | None = Relationship(
        sa_relationship_kwargs={"lazy": "selectin", "foreign_keys": "[Task.assignee_id]"}
    )
    created_by: User | None = Relationship(
        sa_relationship_kwargs={"lazy": "selectin", "foreign_keys": "[Task.created_by_id]"}
    )

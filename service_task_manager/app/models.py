"""
Domain and transport models for the task manager.
"""

from datetime import datetime, timezone
from enum import Enum
import math
from typing import Generic, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field, field_validator

from service_auth.app.validation.claims import Role

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Task status enumeration."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class User(BaseModel):
    """Durable user, created on the first authenticated request for a subject."""
    id: int = Field(..., description="Internal user ID")
    subject: str = Field(..., description="Identity provider subject")
    email: str = Field(..., description="Email address")
    name: str = Field(..., description="Display name")
    role: Role = Field(default=Role.USER, description="Role captured at creation")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class Project(BaseModel):
    """Project owned by exactly one user."""
    id: Optional[int] = Field(None, description="Project ID, assigned on save")
    name: str = Field(..., description="Project name")
    description: Optional[str] = Field(None, description="Project description")
    owner_id: int = Field(..., description="Owning user ID")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Task(BaseModel):
    """Task belonging to one project; inherits the project's owner."""
    id: Optional[int] = Field(None, description="Task ID, assigned on save")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Current status")
    project_id: int = Field(..., description="Parent project ID")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class ProjectRequest(BaseModel):
    """Create or replace a project."""
    name: str = Field(..., min_length=3, max_length=255, description="Project name")
    description: Optional[str] = Field(None, max_length=5000, description="Project description")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class TaskRequest(BaseModel):
    """Create or replace a task."""
    title: str = Field(..., min_length=3, max_length=255, description="Task title")
    description: Optional[str] = Field(None, max_length=5000, description="Task description")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Task status")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class UpdateTaskStatusRequest(BaseModel):
    """Change only the status of a task."""
    status: TaskStatus = Field(..., description="New status")


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: Role
    created_at: datetime

    @classmethod
    def from_entity(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name, role=user.role, created_at=user.created_at)


class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    owner_id: int
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    task_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, project: Project, owner: Optional[User] = None, task_count: int = 0) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            owner_id=project.owner_id,
            owner_name=owner.name if owner else None,
            owner_email=owner.email if owner else None,
            task_count=task_count,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    project_id: int
    project_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, task: Task, project: Optional[Project] = None) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            project_id=task.project_id,
            project_name=project.name if project else None,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class PageResponse(BaseModel, Generic[T]):
    """One page of a larger ordered result."""
    content: List[T] = Field(default_factory=list)
    page_number: int = Field(..., ge=0)
    page_size: int = Field(..., ge=1)
    total_elements: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)

    @classmethod
    def of(cls, items: Sequence[T], page: int, size: int) -> "PageResponse[T]":
        """Slice an already ordered sequence into a page."""
        start = page * size
        return cls(
            content=list(items[start:start + size]),
            page_number=page,
            page_size=size,
            total_elements=len(items),
            total_pages=math.ceil(len(items) / size) if items else 0,
        )

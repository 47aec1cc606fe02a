"""
Domain Models using Pydantic for validation.

Architecture Decision: Why Pydantic?
Pydantic provides runtime data validation, ensuring data integrity for every
command that enters the domain service. Input structs (TaskCreate, TaskPatch,
...) are validated once at the facade boundary; entities are built from ORM
rows with `from_attributes` and serialize to the camelCase JSON surface.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Set
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a new entity id"""
    return uuid4().hex


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    COMPLETED = "COMPLETED"


class TaskStatus(str, Enum):
    """
    Task lifecycle status.

    Note: older frontend type definitions omit CANCELLED; the backend superset
    is used everywhere here.
    """
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.CANCELLED)


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class DomainModel(BaseModel):
    """Base for entities: ORM friendly, camelCase on the wire"""
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


def _clean_tags(tags: Optional[Set[str]]) -> Optional[Set[str]]:
    if tags is None:
        return None
    return {t.strip() for t in tags if t and t.strip()}


class User(DomainModel):
    """A registered user. Identity is immutable."""
    id: str = Field(default_factory=new_id)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    display_name: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=datetime.now)


class Project(DomainModel):
    """
    A project groups tasks and the users allowed to work on them.

    The owner is always part of member_ids.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    owner_id: str
    member_ids: Set[str] = Field(default_factory=set)
    status: ProjectStatus = ProjectStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def is_member(self, user_id: Optional[str]) -> bool:
        return user_id is not None and (user_id == self.owner_id or user_id in self.member_ids)


class Task(DomainModel):
    """A unit of work inside a project"""
    id: str = Field(default_factory=new_id)
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    project_id: str
    creator_id: str
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    tags: Set[str] = Field(default_factory=set)
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.due_date is None or self.status.is_terminal:
            return False
        return self.due_date < (now or datetime.now())


class Dependency(DomainModel):
    """Directed edge: task_id depends on depends_on_id"""
    task_id: str
    depends_on_id: str
    created_at: datetime = Field(default_factory=datetime.now)


class Comment(DomainModel):
    """Append-only note on a task"""
    id: str = Field(default_factory=new_id)
    task_id: str
    author_id: str
    content: str = Field(..., min_length=1, max_length=5000)
    created_at: datetime = Field(default_factory=datetime.now)


# ---- Commands (validated at the facade boundary) ----

class UserCreate(DomainModel):
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    display_name: str = Field(..., min_length=1, max_length=100)


class ProjectCreate(DomainModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    owner_id: str


class ProjectPatch(DomainModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None


class TaskCreate(DomainModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    project_id: str
    creator_id: str
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    tags: Set[str] = Field(default_factory=set)
    estimated_hours: Optional[float] = Field(default=None, ge=0)

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        return _clean_tags(v)


class TaskPatch(DomainModel):
    """
    Partial task update.

    Only fields explicitly present are applied (see `model_fields_set`), so an
    explicit `assignee_id=None` unassigns while an absent one leaves it alone.
    The project of a task cannot be changed, so unknown keys are rejected.
    """
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    tags: Optional[Set[str]] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        return _clean_tags(v)

    def changes(self) -> dict:
        """Fields the caller actually set, keyed by python name"""
        return {name: getattr(self, name) for name in self.model_fields_set}


class TaskFilter(DomainModel):
    """
    Query options for listing tasks.

    `unassigned` selects tasks without an assignee and wins over
    `assignee_id`. `project_id` narrows a cross-project listing to one project.
    """
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    unassigned: bool = False
    project_id: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    due_after: Optional[datetime] = None
    due_before: Optional[datetime] = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class ProjectStats(DomainModel):
    """Task counters for a project dashboard"""
    project_id: str
    total: int = 0
    by_status: dict = Field(default_factory=dict)
    overdue: int = 0
    unassigned: int = 0

"""Domain layer - Pure business entities and error taxonomy"""

from .errors import DomainError, ErrorKind
from .models import (
    Comment, Dependency, Project, ProjectStatus, Task, TaskPriority, TaskStatus, User,
)

__all__ = [
    "DomainError", "ErrorKind",
    "Comment", "Dependency", "Project", "ProjectStatus",
    "Task", "TaskPriority", "TaskStatus", "User",
]

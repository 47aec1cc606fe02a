"""
Domain error taxonomy.

Architecture Decision: Why a single tagged error?
Every failure the domain can detect is a local, non-transient rule violation.
One exception type carrying a `kind` tag keeps handling flat: callers switch on
the kind (e.g. to pick an HTTP status) instead of walking a class hierarchy.
"""

from enum import Enum
from typing import Any, Dict, Optional


def _label(value: Any) -> str:
    """Plain text for enum members and other values"""
    return value.value if isinstance(value, Enum) else str(value)


class ErrorKind(str, Enum):
    """All error kinds the domain service can report"""
    NOT_FOUND = "NotFound"
    CONSTRAINT_VIOLATION = "ConstraintViolation"
    CYCLE_DETECTED = "CycleDetected"
    CROSS_PROJECT_DEPENDENCY = "CrossProjectDependency"
    INVALID_TRANSITION = "InvalidTransition"
    TASK_IMMUTABLE = "TaskImmutable"
    NOT_A_MEMBER = "NotAMember"
    CANNOT_REMOVE_OWNER = "CannotRemoveOwner"
    UNAUTHORIZED = "Unauthorized"


class DomainError(Exception):
    """
    Raised by the domain layer when an operation violates a business rule.

    Attributes:
        kind: The error category (see ErrorKind)
        message: Human readable description
        context: Identifiers involved in the failure (task_id, user_id, ...)
    """

    def __init__(self, kind: ErrorKind, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.context = context or {}

    def __repr__(self) -> str:
        return f"DomainError({self.kind.value}, {self.message!r}, {self.context!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "context": self.context}

    # Convenience constructors

    @classmethod
    def not_found(cls, entity: str, entity_id: Any) -> "DomainError":
        return cls(ErrorKind.NOT_FOUND, f"{entity} {entity_id} not found",
                   {"entity": entity, "id": entity_id})

    @classmethod
    def constraint(cls, message: str, **context: Any) -> "DomainError":
        return cls(ErrorKind.CONSTRAINT_VIOLATION, message, context)

    @classmethod
    def cycle(cls, task_id: str, depends_on_id: str) -> "DomainError":
        return cls(ErrorKind.CYCLE_DETECTED,
                   f"Task {task_id} cannot depend on {depends_on_id}: circular dependency",
                   {"task_id": task_id, "depends_on_id": depends_on_id})

    @classmethod
    def cross_project(cls, task_id: str, depends_on_id: str) -> "DomainError":
        return cls(ErrorKind.CROSS_PROJECT_DEPENDENCY,
                   "Dependencies are only allowed between tasks of the same project",
                   {"task_id": task_id, "depends_on_id": depends_on_id})

    @classmethod
    def invalid_transition(cls, task_id: str, current: Any, target: Any) -> "DomainError":
        return cls(ErrorKind.INVALID_TRANSITION,
                   f"Cannot move task from {_label(current)} to {_label(target)}",
                   {"task_id": task_id, "from": _label(current), "to": _label(target)})

    @classmethod
    def immutable(cls, task_id: str, status: Any) -> "DomainError":
        return cls(ErrorKind.TASK_IMMUTABLE,
                   f"Task {task_id} is {_label(status)} and can no longer be changed",
                   {"task_id": task_id, "status": _label(status)})

    @classmethod
    def not_a_member(cls, user_id: str, project_id: str) -> "DomainError":
        return cls(ErrorKind.NOT_A_MEMBER,
                   f"User {user_id} is not a member of project {project_id}",
                   {"user_id": user_id, "project_id": project_id})

    @classmethod
    def cannot_remove_owner(cls, user_id: str, project_id: str) -> "DomainError":
        return cls(ErrorKind.CANNOT_REMOVE_OWNER,
                   "Cannot remove project owner; transfer ownership first",
                   {"user_id": user_id, "project_id": project_id})

    @classmethod
    def unauthorized(cls, user_id: str, project_id: str, action: Any) -> "DomainError":
        return cls(ErrorKind.UNAUTHORIZED,
                   f"User {user_id} may not {_label(action)} in project {project_id}",
                   {"user_id": user_id, "project_id": project_id, "action": _label(action)})

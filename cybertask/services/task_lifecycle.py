"""
Task Lifecycle - status transitions, field updates and assignment rules.

Architecture Decision: State Machine as data
Allowed transitions live in one table so the rules can be read (and tested)
at a glance. Every method returns a new Task; the input is never mutated, so a
rejected change cannot leave a half-updated entity behind.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, Mapping, Optional

from cybertask.domain.errors import DomainError
from cybertask.domain.models import Project, Task, TaskStatus


ALLOWED_TRANSITIONS: Mapping[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.IN_REVIEW, TaskStatus.CANCELLED}),
    TaskStatus.IN_REVIEW: frozenset({TaskStatus.DONE, TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.DONE: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

# Fields a patch may touch besides status and assignee
EDITABLE_FIELDS = frozenset({
    "title", "description", "priority", "due_date", "tags", "estimated_hours", "actual_hours",
})

# Editable fields that must always hold a value
REQUIRED_FIELDS = frozenset({"title", "priority", "tags"})


class TaskLifecycle:
    """Validates and applies changes to a single task"""

    def can_transition(self, current: TaskStatus, target: TaskStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[current]

    def transition(self, task: Task, target: TaskStatus, now: Optional[datetime] = None) -> Task:
        """
        Move a task to a new status.

        Raises:
            DomainError(INVALID_TRANSITION): target is not reachable from the
                current status (this includes leaving DONE or CANCELLED)
        """
        if not self.can_transition(task.status, target):
            raise DomainError.invalid_transition(task.id, task.status, target)
        now = now or datetime.now()
        update: Dict[str, Any] = {"status": target, "updated_at": now}
        if target == TaskStatus.DONE:
            update["completed_at"] = now
        return task.model_copy(update=update)

    def archive(self, task: Task, now: Optional[datetime] = None) -> Task:
        """
        Close a task for good.

        A task in review is completed (DONE); any other open task is
        CANCELLED, since it never passed review. Already closed tasks are
        returned unchanged.
        """
        if task.status.is_terminal:
            return task
        target = TaskStatus.DONE if self.can_transition(task.status, TaskStatus.DONE) else TaskStatus.CANCELLED
        return self.transition(task, target, now)

    def ensure_mutable(self, task: Task) -> None:
        if task.status.is_terminal:
            raise DomainError.immutable(task.id, task.status)

    def update_fields(self, task: Task, changes: Mapping[str, Any],
                      now: Optional[datetime] = None) -> Task:
        """Apply plain field changes (priority, tags, title, ...)"""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise DomainError.constraint(f"Fields cannot be updated: {sorted(unknown)}",
                                         fields=sorted(unknown))
        cleared = sorted(k for k in REQUIRED_FIELDS & set(changes) if changes[k] is None)
        if cleared:
            raise DomainError.constraint(f"Fields cannot be empty: {cleared}",
                                         task_id=task.id, fields=cleared)
        effective = {k: v for k, v in changes.items() if getattr(task, k) != v}
        if not effective:
            return task
        self.ensure_mutable(task)
        effective["updated_at"] = now or datetime.now()
        return task.model_copy(update=effective)

    def assign(self, task: Task, user_id: str, project: Project,
               now: Optional[datetime] = None) -> Task:
        """
        Assign a task to a project member, replacing any prior assignee.

        Raises:
            DomainError(TASK_IMMUTABLE): task is DONE or CANCELLED
            DomainError(NOT_A_MEMBER): user is not in the task's project
        """
        if task.assignee_id == user_id:
            return task
        self.ensure_mutable(task)
        if not project.is_member(user_id):
            raise DomainError.not_a_member(user_id, project.id)
        return task.model_copy(update={"assignee_id": user_id, "updated_at": now or datetime.now()})

    def unassign(self, task: Task, now: Optional[datetime] = None) -> Task:
        """Clear the assignee; no-op when the task is already unassigned"""
        if task.assignee_id is None:
            return task
        self.ensure_mutable(task)
        return task.model_copy(update={"assignee_id": None, "updated_at": now or datetime.now()})

    def apply_patch(self, task: Task, changes: Mapping[str, Any], project: Project,
                    now: Optional[datetime] = None) -> Task:
        """
        Apply a full patch: fields first, then assignee, then status.

        Field and assignee changes are validated against the current status,
        so a patch can set priority and move the task to DONE together, but
        cannot change a task that is already terminal.
        """
        now = now or datetime.now()
        changes = dict(changes)
        status = changes.pop("status", None)
        has_assignee = "assignee_id" in changes
        assignee_id = changes.pop("assignee_id", None)

        updated = self.update_fields(task, changes, now)
        if has_assignee:
            if assignee_id is None:
                updated = self.unassign(updated, now)
            else:
                updated = self.assign(updated, assignee_id, project, now)
        if status is not None and status != updated.status:
            updated = self.transition(updated, status, now)
        return updated

"""
Membership Service - who belongs to a project and what they may do.
"""

from enum import Enum
from typing import Optional

from cybertask.domain.errors import DomainError
from cybertask.domain.models import Project


class Action(str, Enum):
    """Operations that need project-level authorization"""
    VIEW = "view"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    ASSIGN_TASK = "assign_task"
    COMMENT = "comment"
    MANAGE_DEPENDENCIES = "manage_dependencies"
    LEAVE_PROJECT = "leave_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    ADD_MEMBER = "add_member"
    REMOVE_MEMBER = "remove_member"
    TRANSFER_OWNERSHIP = "transfer_ownership"


MEMBER_ACTIONS = frozenset({
    Action.VIEW,
    Action.CREATE_TASK,
    Action.UPDATE_TASK,
    Action.DELETE_TASK,
    Action.ASSIGN_TASK,
    Action.COMMENT,
    Action.MANAGE_DEPENDENCIES,
    Action.LEAVE_PROJECT,
})


class MembershipService:
    """
    Membership rules for a single project.

    Methods return updated Project copies; persistence and the cascade on
    removal (unassigning the member's tasks) belong to TaskService.
    """

    def is_authorized(self, user_id: Optional[str], project: Project, action: Action) -> bool:
        """Owner may do everything, members the task-level actions, others nothing"""
        if user_id is None:
            return False
        if user_id == project.owner_id:
            return True
        if not project.is_member(user_id):
            return False
        return action in MEMBER_ACTIONS

    def require(self, user_id: Optional[str], project: Project, action: Action) -> None:
        if not self.is_authorized(user_id, project, action):
            raise DomainError.unauthorized(user_id, project.id, action)

    def add_member(self, project: Project, user_id: str) -> Project:
        """Idempotent: adding an existing member returns the project unchanged"""
        if project.is_member(user_id):
            return project
        return project.model_copy(update={"member_ids": project.member_ids | {user_id}})

    def remove_member(self, project: Project, user_id: str) -> Project:
        """
        Raises:
            DomainError(CANNOT_REMOVE_OWNER): user is the owner
            DomainError(NOT_A_MEMBER): user is not in the project
        """
        if user_id == project.owner_id:
            raise DomainError.cannot_remove_owner(user_id, project.id)
        if not project.is_member(user_id):
            raise DomainError.not_a_member(user_id, project.id)
        return project.model_copy(update={"member_ids": project.member_ids - {user_id}})

    def transfer_ownership(self, project: Project, new_owner_id: str) -> Project:
        """Hand the project to another member. The previous owner stays a member."""
        if new_owner_id == project.owner_id:
            return project
        if not project.is_member(new_owner_id):
            raise DomainError.not_a_member(new_owner_id, project.id)
        return project.model_copy(update={
            "owner_id": new_owner_id,
            "member_ids": project.member_ids | {project.owner_id, new_owner_id},
        })

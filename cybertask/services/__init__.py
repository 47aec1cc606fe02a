"""Services layer - Business logic"""

from .dependency_graph import DependencyGraph
from .membership_service import Action, MembershipService
from .task_lifecycle import TaskLifecycle
from .task_service import TaskService

__all__ = ["DependencyGraph", "Action", "MembershipService", "TaskLifecycle", "TaskService"]

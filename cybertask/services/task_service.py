"""
Task Service - the single entry point of the domain.

Architecture Decision: Unit of Work + per-project lock
Every public operation opens one session and one transaction. Repositories only
flush, so if any step raises a DomainError the transaction is rolled back and
no partial change is ever visible. Operations that read-then-write a project's
graph, membership or tasks run under that project's asyncio.Lock; the
dependency cycle check would be unsafe otherwise. Different projects never
share a lock.
"""

import asyncio
import functools
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cybertask.domain.errors import DomainError
from cybertask.domain.models import (
    Comment, Dependency, Project, ProjectCreate, ProjectPatch, ProjectStats, Task,
    TaskCreate, TaskFilter, TaskPatch, TaskStatus, User, UserCreate,
)
from cybertask.infra.db import get_engine
from cybertask.infra.repository import Repositories
from cybertask.services.dependency_graph import DependencyGraph
from cybertask.services.membership_service import Action, MembershipService
from cybertask.services.task_lifecycle import TaskLifecycle

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_input(model: Type[M], data: Union[M, Mapping[str, Any]]) -> M:
    """Validate a command at the boundary, turning pydantic errors into ConstraintViolation"""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise DomainError.constraint(f"Invalid {model.__name__}: {', '.join(fields)}",
                                     fields=fields) from e


def domain_operation(func):
    """Log rejected operations before the error reaches the caller"""
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except DomainError as e:
            logger.info(f"{func.__name__} rejected: {e.kind.value}: {e.message}")
            raise
    return wrapper


class ProjectLocks:
    """One asyncio.Lock per project, dropped once nobody holds a reference"""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock


# Shared by every TaskService in the process, so separate facades over the
# same database still serialize per project
PROJECT_LOCKS = ProjectLocks()


class TaskService:
    """
    Facade composing the entity store, dependency graph, lifecycle and
    membership rules.

    Mutating operations take the acting user as `actor_id` and check it
    against the project's authorization rules.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None,
                 locks: Optional[ProjectLocks] = None):
        self.session_factory = session_factory or get_engine().session_factory
        self.lifecycle = TaskLifecycle()
        self.membership = MembershipService()
        self.locks = locks or PROJECT_LOCKS

    # ---- transaction helpers ----

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[Repositories]:
        session: AsyncSession
        async with self.session_factory() as session:
            async with session.begin():
                yield Repositories(session)

    @asynccontextmanager
    async def _project_scope(self, project_id: str) -> AsyncIterator[Repositories]:
        """Serialized unit of work for one project"""
        async with self.locks.get(project_id):
            async with self._unit_of_work() as repos:
                yield repos

    async def _project_of_task(self, task_id: str) -> str:
        async with self._unit_of_work() as repos:
            return await repos.tasks.project_id_of(task_id)

    async def _load_graph(self, repos: Repositories, project_id: str) -> DependencyGraph:
        task_ids = await repos.tasks.ids_by_project(project_id)
        edges = await repos.dependencies.list_for_project(project_id)
        return DependencyGraph(
            {task_id: project_id for task_id in task_ids},
            [(e.task_id, e.depends_on_id) for e in edges],
        )

    # ---- users ----

    @domain_operation
    async def create_user(self, data: Union[UserCreate, Mapping[str, Any]]) -> User:
        command = parse_input(UserCreate, data)
        async with self._unit_of_work() as repos:
            user = await repos.users.put(User(
                email=command.email.lower(),
                display_name=command.display_name,
            ))
        logger.info(f"User created: {user.email}")
        return user

    @domain_operation
    async def get_user(self, user_id: str) -> User:
        async with self._unit_of_work() as repos:
            return await repos.users.get(user_id)

    # ---- projects ----

    @domain_operation
    async def create_project(self, data: Union[ProjectCreate, Mapping[str, Any]]) -> Project:
        command = parse_input(ProjectCreate, data)
        async with self._unit_of_work() as repos:
            await repos.users.get(command.owner_id)
            project = await repos.projects.put(Project(
                name=command.name,
                description=command.description,
                owner_id=command.owner_id,
                member_ids={command.owner_id},
            ))
        logger.info(f"Project created: {project.name} ({project.id}) by {project.owner_id}")
        return project

    @domain_operation
    async def get_project(self, project_id: str, actor_id: Optional[str] = None) -> Project:
        async with self._unit_of_work() as repos:
            project = await repos.projects.get(project_id)
            if actor_id is not None:
                self.membership.require(actor_id, project, Action.VIEW)
            return project

    @domain_operation
    async def list_projects_for_user(self, user_id: str) -> List[Project]:
        async with self._unit_of_work() as repos:
            await repos.users.get(user_id)
            return await repos.projects.list_for_user(user_id)

    @domain_operation
    async def update_project(self, project_id: str, patch: Union[ProjectPatch, Mapping[str, Any]],
                             *, actor_id: str) -> Project:
        command = parse_input(ProjectPatch, patch)
        async with self._project_scope(project_id) as repos:
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.UPDATE_PROJECT)
            changes = {name: getattr(command, name) for name in command.model_fields_set}
            if changes.get("name", "") is None:
                raise DomainError.constraint("Project name cannot be empty", project_id=project_id)
            if "status" in changes and changes["status"] is None:
                changes.pop("status")
            if not changes:
                return project
            changes["updated_at"] = datetime.now()
            project = await repos.projects.put(project.model_copy(update=changes))
        logger.info(f"Project updated: {project_id} fields={sorted(changes)} by {actor_id}")
        return project

    @domain_operation
    async def delete_project(self, project_id: str, *, actor_id: str) -> None:
        """Delete a project with all of its tasks, edges, comments and memberships"""
        async with self._project_scope(project_id) as repos:
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.DELETE_PROJECT)
            task_ids = await repos.tasks.ids_by_project(project_id)
            for task_id in task_ids:
                await repos.dependencies.delete_for_task(task_id)
                await repos.comments.delete_for_task(task_id)
                await repos.tasks.delete(task_id)
            await repos.projects.delete(project_id)
        logger.info(f"Project deleted: {project_id} ({len(task_ids)} tasks) by {actor_id}")

    @domain_operation
    async def transfer_ownership(self, project_id: str, new_owner_id: str, *, actor_id: str) -> Project:
        async with self._project_scope(project_id) as repos:
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.TRANSFER_OWNERSHIP)
            await repos.users.get(new_owner_id)
            updated = self.membership.transfer_ownership(project, new_owner_id)
            if updated is project:
                return project
            project = await repos.projects.put(updated.model_copy(update={"updated_at": datetime.now()}))
        logger.info(f"Project {project_id} ownership transferred to {new_owner_id} by {actor_id}")
        return project

    # ---- membership ----

    @domain_operation
    async def add_member(self, project_id: str, user_id: str, *, actor_id: str) -> Project:
        async with self._project_scope(project_id) as repos:
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.ADD_MEMBER)
            await repos.users.get(user_id)
            updated = self.membership.add_member(project, user_id)
            if updated is project:
                return project
            project = await repos.projects.put(updated)
        logger.info(f"Member {user_id} added to project {project_id} by {actor_id}")
        return project

    @domain_operation
    async def remove_member(self, project_id: str, user_id: str, *, actor_id: str) -> Project:
        """Remove a member and unassign every task of the project they held"""
        async with self._project_scope(project_id) as repos:
            project = await repos.projects.get(project_id)
            if user_id == project.owner_id:
                raise DomainError.cannot_remove_owner(user_id, project_id)
            action = Action.LEAVE_PROJECT if actor_id == user_id else Action.REMOVE_MEMBER
            self.membership.require(actor_id, project, action)
            updated = self.membership.remove_member(project, user_id)
            unassigned = await repos.tasks.clear_assignee(project_id, user_id)
            project = await repos.projects.put(updated)
        logger.info(f"Member {user_id} removed from project {project_id} by {actor_id}, "
                    f"{unassigned} task(s) unassigned")
        return project

    # ---- tasks ----

    @domain_operation
    async def create_task(self, data: Union[TaskCreate, Mapping[str, Any]]) -> Task:
        command = parse_input(TaskCreate, data)
        async with self._project_scope(command.project_id) as repos:
            project = await repos.projects.get(command.project_id)
            if not project.is_member(command.creator_id):
                raise DomainError.not_a_member(command.creator_id, project.id)
            if command.assignee_id is not None and not project.is_member(command.assignee_id):
                raise DomainError.not_a_member(command.assignee_id, project.id)
            task = await repos.tasks.put(Task(**command.model_dump()))
        logger.info(f"Task created: {task.title} ({task.id}) in project {task.project_id}")
        return task

    @domain_operation
    async def get_task(self, task_id: str, actor_id: Optional[str] = None) -> Task:
        async with self._unit_of_work() as repos:
            task = await repos.tasks.get(task_id)
            if actor_id is not None:
                project = await repos.projects.get(task.project_id)
                self.membership.require(actor_id, project, Action.VIEW)
            return task

    @domain_operation
    async def list_tasks(self, project_id: str, filters: Union[TaskFilter, Mapping[str, Any], None] = None,
                         actor_id: Optional[str] = None) -> List[Task]:
        query = parse_input(TaskFilter, filters or {})
        async with self._unit_of_work() as repos:
            project = await repos.projects.get(project_id)
            if actor_id is not None:
                self.membership.require(actor_id, project, Action.VIEW)
            return await repos.tasks.list_by_project(project_id, query)

    @domain_operation
    async def list_tasks_for_user(self, user_id: str,
                                  filters: Union[TaskFilter, Mapping[str, Any], None] = None) -> List[Task]:
        """Tasks across every project the user owns or belongs to"""
        query = parse_input(TaskFilter, filters or {})
        async with self._unit_of_work() as repos:
            await repos.users.get(user_id)
            return await repos.tasks.list_for_user(user_id, query)

    @domain_operation
    async def update_task(self, task_id: str, patch: Union[TaskPatch, Mapping[str, Any]],
                          *, actor_id: str) -> Task:
        command = parse_input(TaskPatch, patch)
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            task = await repos.tasks.get(task_id)
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.UPDATE_TASK)
            updated = self.lifecycle.apply_patch(task, command.changes(), project)
            if updated is task:
                return task
            task = await repos.tasks.put(updated)
        logger.info(f"Task updated: {task_id} fields={sorted(command.model_fields_set)} by {actor_id}")
        return task

    @domain_operation
    async def delete_task(self, task_id: str, *, actor_id: str) -> None:
        """Delete a task, its comments and every dependency edge touching it"""
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            await repos.tasks.get(task_id)
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.DELETE_TASK)
            edges = await repos.dependencies.delete_for_task(task_id)
            comments = await repos.comments.delete_for_task(task_id)
            await repos.tasks.delete(task_id)
        logger.info(f"Task deleted: {task_id} ({edges} dependencies, {comments} comments) by {actor_id}")

    @domain_operation
    async def assign_task(self, task_id: str, user_id: str, *, actor_id: str) -> Task:
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            task = await repos.tasks.get(task_id)
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.ASSIGN_TASK)
            updated = self.lifecycle.assign(task, user_id, project)
            if updated is task:
                return task
            task = await repos.tasks.put(updated)
        logger.info(f"Task assigned: {task_id} to {user_id} by {actor_id}")
        return task

    @domain_operation
    async def unassign_task(self, task_id: str, *, actor_id: str) -> Task:
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            task = await repos.tasks.get(task_id)
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.ASSIGN_TASK)
            updated = self.lifecycle.unassign(task)
            if updated is task:
                return task
            task = await repos.tasks.put(updated)
        logger.info(f"Task unassigned: {task_id} by {actor_id}")
        return task

    @domain_operation
    async def archive_task(self, task_id: str, *, actor_id: str) -> Task:
        """Close a task: DONE from review, CANCELLED from any other open status"""
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            task = await repos.tasks.get(task_id)
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.UPDATE_TASK)
            updated = self.lifecycle.archive(task)
            if updated is task:
                return task
            task = await repos.tasks.put(updated)
        logger.info(f"Task archived: {task_id} as {task.status.value} by {actor_id}")
        return task

    # ---- dependencies ----

    @domain_operation
    async def add_dependency(self, task_id: str, depends_on_id: str, *, actor_id: str) -> Dependency:
        """
        Record that task_id depends on depends_on_id.

        Raises:
            DomainError(CYCLE_DETECTED): the edge would close a cycle
            DomainError(CROSS_PROJECT_DEPENDENCY): tasks are in different projects
        """
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            await repos.tasks.get(task_id)
            other = await repos.tasks.get(depends_on_id)
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.MANAGE_DEPENDENCIES)

            graph = await self._load_graph(repos, project_id)
            graph.add_task(other.id, other.project_id)
            graph.add_edge(task_id, depends_on_id)
            edge = await repos.dependencies.add(Dependency(task_id=task_id, depends_on_id=depends_on_id))
        logger.info(f"Dependency added: {task_id} -> {depends_on_id} by {actor_id}")
        return edge

    @domain_operation
    async def remove_dependency(self, task_id: str, depends_on_id: str, *, actor_id: str) -> None:
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            project = await repos.projects.get(project_id)
            self.membership.require(actor_id, project, Action.MANAGE_DEPENDENCIES)
            await repos.dependencies.remove(task_id, depends_on_id)
        logger.info(f"Dependency removed: {task_id} -> {depends_on_id} by {actor_id}")

    @domain_operation
    async def get_dependencies(self, task_id: str) -> List[Task]:
        """Tasks that task_id depends on"""
        async with self._unit_of_work() as repos:
            await repos.tasks.get(task_id)
            edges = await repos.dependencies.list_for_task(task_id)
            return [await repos.tasks.get(e.depends_on_id) for e in edges]

    @domain_operation
    async def get_dependents(self, task_id: str) -> List[Task]:
        """Tasks that depend on task_id"""
        async with self._unit_of_work() as repos:
            await repos.tasks.get(task_id)
            edges = await repos.dependencies.list_dependents(task_id)
            return [await repos.tasks.get(e.task_id) for e in edges]

    # ---- comments ----

    @domain_operation
    async def add_comment(self, task_id: str, author_id: str, content: str) -> Comment:
        project_id = await self._project_of_task(task_id)
        async with self._project_scope(project_id) as repos:
            await repos.tasks.get(task_id)
            project = await repos.projects.get(project_id)
            if not project.is_member(author_id):
                raise DomainError.not_a_member(author_id, project_id)
            comment = parse_input(Comment, {"task_id": task_id, "author_id": author_id,
                                            "content": (content or "").strip()})
            comment = await repos.comments.put(comment)
        logger.info(f"Comment added to task {task_id} by {author_id}")
        return comment

    @domain_operation
    async def list_comments(self, task_id: str, actor_id: Optional[str] = None,
                            limit: int = 20, offset: int = 0) -> List[Comment]:
        async with self._unit_of_work() as repos:
            task = await repos.tasks.get(task_id)
            if actor_id is not None:
                project = await repos.projects.get(task.project_id)
                self.membership.require(actor_id, project, Action.VIEW)
            return await repos.comments.list_for_task(task_id, limit=limit, offset=offset)

    # ---- reporting ----

    @domain_operation
    async def get_project_stats(self, project_id: str, actor_id: Optional[str] = None) -> ProjectStats:
        """Task counters per status plus overdue and unassigned totals"""
        async with self._unit_of_work() as repos:
            project = await repos.projects.get(project_id)
            if actor_id is not None:
                self.membership.require(actor_id, project, Action.VIEW)
            counts = await repos.task_counts(project_id)
            tasks = await repos.tasks.list_by_project(project_id)
        now = datetime.now()
        return ProjectStats(
            project_id=project_id,
            total=sum(counts.values()),
            by_status={s.value: counts.get(s.value, 0) for s in TaskStatus},
            overdue=sum(1 for t in tasks if t.is_overdue(now)),
            unassigned=sum(1 for t in tasks if t.assignee_id is None and not t.status.is_terminal),
        )

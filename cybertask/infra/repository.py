"""
Repository Pattern Implementation (the entity store).

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Mock data for testing
- Keep the domain service free of SQL

Repositories never commit. They work inside the session handed to them and
only flush, so the caller (TaskService) owns the transaction and can roll a
multi-step operation back as a whole.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cybertask.domain.errors import DomainError
from cybertask.domain.models import Comment, Dependency, Project, Task, TaskFilter, User
from cybertask.infra.db import (
    CommentModel, DependencyModel, ProjectMemberModel, ProjectModel, TaskModel, UserModel,
)

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Keyed storage for one entity type.

    Subclasses set `model`, `entity` and `entity_name` and implement `_to_row`.
    """

    model = None
    entity = None
    entity_name = "Entity"

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_row(self, entity) -> dict:
        raise NotImplementedError

    async def _check_constraints(self, entity) -> None:
        """Hook for uniqueness/referential checks before writing"""

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DomainError.constraint(
                f"{self.entity_name} violates a database constraint",
                detail=str(e.orig),
            ) from e

    async def find(self, entity_id: str):
        """Get an entity by id, None if missing"""
        model = await self.session.get(self.model, entity_id)
        return self.entity.model_validate(model) if model else None

    async def get(self, entity_id: str):
        """Get an entity by id or raise NotFound"""
        found = await self.find(entity_id)
        if found is None:
            raise DomainError.not_found(self.entity_name, entity_id)
        return found

    async def put(self, entity):
        """Insert or replace by id"""
        await self._check_constraints(entity)
        await self.session.merge(self.model(**self._to_row(entity)))
        await self._flush()
        logger.debug(f"{self.entity_name} stored id={entity.id}")
        return entity

    async def delete(self, entity_id: str) -> None:
        """Remove an entity. Dependents are the caller's responsibility."""
        model = await self.session.get(self.model, entity_id)
        if model is None:
            raise DomainError.not_found(self.entity_name, entity_id)
        await self.session.delete(model)
        await self._flush()
        logger.debug(f"{self.entity_name} deleted id={entity_id}")


class UserRepository(BaseRepository):
    """Handles User persistence. Emails are unique (case-insensitive)."""

    model = UserModel
    entity = User
    entity_name = "User"

    def _to_row(self, user: User) -> dict:
        return {
            "id": user.id,
            "email": user.email.lower(),
            "display_name": user.display_name,
            "created_at": user.created_at,
        }

    async def _check_constraints(self, user: User) -> None:
        existing = await self.find_by_email(user.email)
        if existing and existing.id != user.id:
            raise DomainError.constraint(f"Email {user.email} is already registered", email=user.email)

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(func.lower(UserModel.email) == email.lower())
        )
        model = result.scalar_one_or_none()
        return User.model_validate(model) if model else None


class ProjectRepository(BaseRepository):
    """
    Handles Project persistence, including the membership table.

    The member set always contains the owner when written.
    """

    model = ProjectModel
    entity = Project
    entity_name = "Project"

    def _to_row(self, project: Project) -> dict:
        return {
            "id": project.id,
            "name": project.name,
            "description": project.description,
            "owner_id": project.owner_id,
            "status": project.status.value,
            "created_at": project.created_at,
            "updated_at": project.updated_at,
        }

    async def _check_constraints(self, project: Project) -> None:
        if await self.session.get(UserModel, project.owner_id) is None:
            raise DomainError.constraint(f"Owner {project.owner_id} does not exist",
                                         owner_id=project.owner_id)

    async def member_ids(self, project_id: str) -> Set[str]:
        result = await self.session.execute(
            select(ProjectMemberModel.user_id).where(ProjectMemberModel.project_id == project_id)
        )
        return set(result.scalars().all())

    async def find(self, project_id: str) -> Optional[Project]:
        model = await self.session.get(ProjectModel, project_id)
        if model is None:
            return None
        return Project(
            id=model.id,
            name=model.name,
            description=model.description,
            owner_id=model.owner_id,
            member_ids=await self.member_ids(project_id),
            status=model.status,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def put(self, project: Project) -> Project:
        members = set(project.member_ids) | {project.owner_id}
        missing = members - await self._existing_users(members)
        if missing:
            raise DomainError.constraint("Unknown users in member set", user_ids=sorted(missing))

        await super().put(project)

        current = await self.member_ids(project.id)
        stale = current - members
        if stale:
            await self.session.execute(
                delete(ProjectMemberModel).where(
                    ProjectMemberModel.project_id == project.id,
                    ProjectMemberModel.user_id.in_(stale),
                )
            )
        for user_id in members - current:
            self.session.add(ProjectMemberModel(project_id=project.id, user_id=user_id))
        await self._flush()
        return project.model_copy(update={"member_ids": members})

    async def delete(self, project_id: str) -> None:
        await self.session.execute(
            delete(ProjectMemberModel).where(ProjectMemberModel.project_id == project_id)
        )
        await super().delete(project_id)

    async def list_for_user(self, user_id: str) -> List[Project]:
        """Projects the user owns or belongs to, newest first"""
        result = await self.session.execute(
            select(ProjectModel.id)
            .outerjoin(ProjectMemberModel, ProjectMemberModel.project_id == ProjectModel.id)
            .where(or_(ProjectModel.owner_id == user_id, ProjectMemberModel.user_id == user_id))
            .distinct()
        )
        projects = [await self.get(pid) for pid in result.scalars().all()]
        return sorted(projects, key=lambda p: p.created_at, reverse=True)

    async def _existing_users(self, user_ids: Set[str]) -> Set[str]:
        result = await self.session.execute(select(UserModel.id).where(UserModel.id.in_(user_ids)))
        return set(result.scalars().all())


class TaskRepository(BaseRepository):
    """
    Handles all Task-related database operations.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    """

    model = TaskModel
    entity = Task
    entity_name = "Task"

    def _to_row(self, task: Task) -> dict:
        return {
            "id": task.id,
            "title": task.title,
            "description": task.description,
            "status": task.status.value,
            "priority": task.priority.value,
            "project_id": task.project_id,
            "creator_id": task.creator_id,
            "assignee_id": task.assignee_id,
            "due_date": task.due_date,
            "tags": sorted(task.tags),
            "estimated_hours": task.estimated_hours,
            "actual_hours": task.actual_hours,
            "created_at": task.created_at,
            "updated_at": task.updated_at,
            "completed_at": task.completed_at,
        }

    async def _check_constraints(self, task: Task) -> None:
        if await self.session.get(ProjectModel, task.project_id) is None:
            raise DomainError.constraint(f"Project {task.project_id} does not exist",
                                         project_id=task.project_id)
        for field, user_id in (("creator_id", task.creator_id), ("assignee_id", task.assignee_id)):
            if user_id is not None and await self.session.get(UserModel, user_id) is None:
                raise DomainError.constraint(f"User {user_id} does not exist", **{field: user_id})

    async def project_id_of(self, task_id: str) -> str:
        """Resolve the (immutable) project of a task"""
        result = await self.session.execute(
            select(TaskModel.project_id).where(TaskModel.id == task_id)
        )
        project_id = result.scalar_one_or_none()
        if project_id is None:
            raise DomainError.not_found("Task", task_id)
        return project_id

    async def list_by_project(self, project_id: str, filters: Optional[TaskFilter] = None) -> List[Task]:
        """
        Get the tasks of a project, newest first.

        Without filters every task is returned; with filters the result is
        paged by `limit`/`offset`.
        """
        stmt = select(TaskModel).where(TaskModel.project_id == project_id)
        if filters is None:
            result = await self.session.execute(stmt.order_by(TaskModel.created_at.desc()))
            return [Task.model_validate(m) for m in result.scalars().all()]
        return await self._filtered(stmt, filters)

    async def list_for_user(self, user_id: str, filters: TaskFilter) -> List[Task]:
        """Tasks of every project the user owns or belongs to, newest first"""
        memberships = select(ProjectMemberModel.project_id).where(ProjectMemberModel.user_id == user_id)
        owned = select(ProjectModel.id).where(ProjectModel.owner_id == user_id)
        stmt = select(TaskModel).where(
            or_(TaskModel.project_id.in_(memberships), TaskModel.project_id.in_(owned))
        )
        return await self._filtered(stmt, filters)

    async def _filtered(self, stmt, filters: TaskFilter) -> List[Task]:
        if filters.project_id:
            stmt = stmt.where(TaskModel.project_id == filters.project_id)
        if filters.status:
            stmt = stmt.where(TaskModel.status == filters.status.value)
        if filters.priority:
            stmt = stmt.where(TaskModel.priority == filters.priority.value)
        if filters.unassigned:
            stmt = stmt.where(TaskModel.assignee_id.is_(None))
        elif filters.assignee_id:
            stmt = stmt.where(TaskModel.assignee_id == filters.assignee_id)
        if filters.due_after:
            stmt = stmt.where(TaskModel.due_date >= filters.due_after)
        if filters.due_before:
            stmt = stmt.where(TaskModel.due_date <= filters.due_before)
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(or_(TaskModel.title.ilike(pattern), TaskModel.description.ilike(pattern)))

        result = await self.session.execute(stmt.order_by(TaskModel.created_at.desc()))
        tasks = [Task.model_validate(m) for m in result.scalars().all()]

        # Tags live in a JSON column; filter them here to stay database agnostic
        if filters.tag:
            tasks = [t for t in tasks if filters.tag in t.tags]
        return tasks[filters.offset:filters.offset + filters.limit]

    async def ids_by_project(self, project_id: str) -> List[str]:
        result = await self.session.execute(
            select(TaskModel.id).where(TaskModel.project_id == project_id)
        )
        return list(result.scalars().all())

    async def clear_assignee(self, project_id: str, user_id: str) -> int:
        """Unassign every task of the project assigned to user_id. Returns count."""
        result = await self.session.execute(
            update(TaskModel)
            .where(TaskModel.project_id == project_id, TaskModel.assignee_id == user_id)
            .values(assignee_id=None, updated_at=datetime.now())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount


class DependencyRepository:
    """Stores the edges of the task dependency graph"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_project(self, project_id: str) -> List[Dependency]:
        """All edges whose dependent task lives in the project"""
        result = await self.session.execute(
            select(DependencyModel)
            .join(TaskModel, TaskModel.id == DependencyModel.task_id)
            .where(TaskModel.project_id == project_id)
        )
        return [Dependency.model_validate(m) for m in result.scalars().all()]

    async def list_for_task(self, task_id: str) -> List[Dependency]:
        """Edges leaving task_id (what it depends on)"""
        result = await self.session.execute(
            select(DependencyModel).where(DependencyModel.task_id == task_id)
        )
        return [Dependency.model_validate(m) for m in result.scalars().all()]

    async def list_dependents(self, task_id: str) -> List[Dependency]:
        """Edges entering task_id (who depends on it)"""
        result = await self.session.execute(
            select(DependencyModel).where(DependencyModel.depends_on_id == task_id)
        )
        return [Dependency.model_validate(m) for m in result.scalars().all()]

    async def add(self, edge: Dependency) -> Dependency:
        for task_id in (edge.task_id, edge.depends_on_id):
            if await self.session.get(TaskModel, task_id) is None:
                raise DomainError.constraint(f"Task {task_id} does not exist", task_id=task_id)
        if await self.session.get(DependencyModel, (edge.task_id, edge.depends_on_id)) is not None:
            raise DomainError.constraint("Dependency already exists",
                                         task_id=edge.task_id, depends_on_id=edge.depends_on_id)
        self.session.add(DependencyModel(
            task_id=edge.task_id,
            depends_on_id=edge.depends_on_id,
            created_at=edge.created_at,
        ))
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DomainError.constraint("Dependency violates a database constraint",
                                         detail=str(e.orig)) from e
        return edge

    async def remove(self, task_id: str, depends_on_id: str) -> None:
        model = await self.session.get(DependencyModel, (task_id, depends_on_id))
        if model is None:
            raise DomainError.not_found("Dependency", f"{task_id}->{depends_on_id}")
        await self.session.delete(model)
        await self.session.flush()

    async def delete_for_task(self, task_id: str) -> int:
        """Remove every edge touching task_id, in both directions"""
        result = await self.session.execute(
            delete(DependencyModel).where(
                or_(DependencyModel.task_id == task_id, DependencyModel.depends_on_id == task_id)
            )
        )
        return result.rowcount


class CommentRepository(BaseRepository):
    """Append-only task comments"""

    model = CommentModel
    entity = Comment
    entity_name = "Comment"

    def _to_row(self, comment: Comment) -> dict:
        return {
            "id": comment.id,
            "task_id": comment.task_id,
            "author_id": comment.author_id,
            "content": comment.content,
            "created_at": comment.created_at,
        }

    async def _check_constraints(self, comment: Comment) -> None:
        if await self.session.get(CommentModel, comment.id) is not None:
            raise DomainError.constraint("Comments are append-only", comment_id=comment.id)
        if await self.session.get(TaskModel, comment.task_id) is None:
            raise DomainError.constraint(f"Task {comment.task_id} does not exist",
                                         task_id=comment.task_id)

    async def list_for_task(self, task_id: str, limit: int = 20, offset: int = 0) -> List[Comment]:
        """Comments of a task, newest first"""
        result = await self.session.execute(
            select(CommentModel)
            .where(CommentModel.task_id == task_id)
            .order_by(CommentModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return [Comment.model_validate(m) for m in result.scalars().all()]

    async def delete_for_task(self, task_id: str) -> int:
        result = await self.session.execute(
            delete(CommentModel).where(CommentModel.task_id == task_id)
        )
        return result.rowcount


class Repositories:
    """All repositories bound to one session (one unit of work)"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.projects = ProjectRepository(session)
        self.tasks = TaskRepository(session)
        self.dependencies = DependencyRepository(session)
        self.comments = CommentRepository(session)

    async def task_counts(self, project_id: str) -> Dict[str, int]:
        """Number of tasks per status value"""
        result = await self.session.execute(
            select(TaskModel.status, func.count())
            .where(TaskModel.project_id == project_id)
            .group_by(TaskModel.status)
        )
        return {status: int(n) for status, n in result.all()}

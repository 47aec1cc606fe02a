"""
SQLAlchemy database models and configuration.

Architecture Decision: Why SQLAlchemy?
- Provides ORM for cleaner code and prevents SQL injection
- Supports async operations for non-blocking database access
- Transactions give the domain service all-or-nothing writes
- Easy to migrate to PostgreSQL or other databases if needed
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON, DateTime, Float, ForeignKey, Index, String, Text, UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Base class for all models
class Base(DeclarativeBase):
    pass


class UserModel(Base):
    """SQLAlchemy model for User entity"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class ProjectModel(Base):
    """SQLAlchemy model for Project entity"""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class ProjectMemberModel(Base):
    """Membership rows. The owner has a row too."""
    __tablename__ = "project_members"

    project_id: Mapped[str] = mapped_column(String(32), ForeignKey("projects.id"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"), primary_key=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class TaskModel(Base):
    """SQLAlchemy model for Task entity"""
    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_project_status", "project_id", "status"),
        Index("idx_tasks_assignee", "assignee_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="TODO", nullable=False)
    priority: Mapped[str] = mapped_column(String(10), default="MEDIUM", nullable=False)
    project_id: Mapped[str] = mapped_column(String(32), ForeignKey("projects.id"), nullable=False)
    creator_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"), nullable=False)
    assignee_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("users.id"), nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    estimated_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class DependencyModel(Base):
    """Edge of the task dependency graph (task_id depends on depends_on_id)"""
    __tablename__ = "task_dependencies"
    __table_args__ = (
        UniqueConstraint("task_id", "depends_on_id", name="uq_task_dependency"),
    )

    task_id: Mapped[str] = mapped_column(String(32), ForeignKey("tasks.id"), primary_key=True)
    depends_on_id: Mapped[str] = mapped_column(String(32), ForeignKey("tasks.id"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class CommentModel(Base):
    """SQLAlchemy model for task comments"""
    __tablename__ = "task_comments"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    task_id: Mapped[str] = mapped_column(String(32), ForeignKey("tasks.id"), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)


class DatabaseEngine:
    """
    Manages database connection and session lifecycle.

    Singleton pattern ensures only one engine exists per application.
    """
    _instance: Optional['DatabaseEngine'] = None

    def __init__(self, db_url: str, echo: bool = False):
        self.engine = create_async_engine(db_url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    @classmethod
    def get_instance(cls, db_url: Optional[str] = None) -> 'DatabaseEngine':
        """Get or create the database engine instance"""
        if cls._instance is None:
            from cybertask.infra.config import get_settings
            settings = get_settings()
            cls._instance = cls(db_url or settings.get_db_url(), echo=settings.sql_echo)
        return cls._instance

    @classmethod
    async def reset_instance(cls) -> None:
        """Dispose the current engine (used by scripts and tests)"""
        if cls._instance is not None:
            await cls._instance.engine.dispose()
            cls._instance = None

    async def create_tables(self):
        """Create all tables in the database"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


# Convenience functions
def get_engine(db_url: Optional[str] = None) -> DatabaseEngine:
    """Get the database engine instance"""
    return DatabaseEngine.get_instance(db_url)


async def init_db(db_url: Optional[str] = None) -> DatabaseEngine:
    """Initialize the database (create tables)"""
    engine = get_engine(db_url)
    await engine.create_tables()
    return engine

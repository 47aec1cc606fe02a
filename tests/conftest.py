"""
Pytest configuration and fixtures.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from cybertask.infra.db import Base
from cybertask.services.task_service import TaskService


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Create a throwaway SQLite database for testing.

    A file (not :memory:) so every session gets its own connection, like in
    production.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cybertask-test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a new session for a test"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def service(session_factory):
    return TaskService(session_factory)


@pytest_asyncio.fixture
async def team(service):
    """
    An owner, a member and an outsider, plus one project owned by `owner`
    with `member` added.
    """
    owner = await service.create_user({"email": "owner@example.com", "display_name": "Olivia Owner"})
    member = await service.create_user({"email": "member@example.com", "display_name": "Max Member"})
    outsider = await service.create_user({"email": "outsider@example.com", "display_name": "Otto Out"})
    project = await service.create_project({"name": "Apollo", "owner_id": owner.id})
    project = await service.add_member(project.id, member.id, actor_id=owner.id)
    return SimpleNamespace(owner=owner, member=member, outsider=outsider, project=project)


@pytest.fixture
def make_task(service, team):
    """Factory creating a task in the team project"""
    async def _make(title: str, **fields):
        data = {"title": title, "project_id": team.project.id, "creator_id": team.owner.id}
        data.update(fields)
        return await service.create_task(data)
    return _make

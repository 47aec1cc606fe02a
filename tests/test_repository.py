"""
Tests for the entity store (repositories over an SQLite session).
"""

import pytest

from cybertask.domain.errors import DomainError, ErrorKind
from cybertask.domain.models import Comment, Dependency, Project, Task, TaskFilter, TaskStatus, User
from cybertask.infra.repository import Repositories


@pytest.fixture
def repos(db_session):
    return Repositories(db_session)


async def seed_project(repos):
    owner = await repos.users.put(User(email="owner@example.com", display_name="Owner"))
    dev = await repos.users.put(User(email="dev@example.com", display_name="Dev"))
    project = await repos.projects.put(Project(name="Apollo", owner_id=owner.id, member_ids={dev.id}))
    return owner, dev, project


@pytest.mark.asyncio
async def test_put_and_get_user(repos):
    user = await repos.users.put(User(email="Ada@Example.com", display_name="Ada"))
    loaded = await repos.users.get(user.id)
    assert loaded.email == "ada@example.com"
    assert loaded.display_name == "Ada"


@pytest.mark.asyncio
async def test_get_missing_raises_not_found(repos):
    with pytest.raises(DomainError) as exc:
        await repos.tasks.get("does-not-exist")
    assert exc.value.kind == ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_duplicate_email_is_constraint_violation(repos):
    await repos.users.put(User(email="ada@example.com", display_name="Ada"))
    with pytest.raises(DomainError) as exc:
        await repos.users.put(User(email="ADA@example.com", display_name="Impostor"))
    assert exc.value.kind == ErrorKind.CONSTRAINT_VIOLATION


@pytest.mark.asyncio
async def test_put_replaces_by_id(repos):
    user = await repos.users.put(User(email="ada@example.com", display_name="Ada"))
    await repos.users.put(user.model_copy(update={"display_name": "Ada L."}))
    assert (await repos.users.get(user.id)).display_name == "Ada L."


@pytest.mark.asyncio
async def test_project_members_always_include_owner(repos):
    owner, dev, project = await seed_project(repos)
    loaded = await repos.projects.get(project.id)
    assert loaded.member_ids == {owner.id, dev.id}

    # Writing a member set without the owner keeps the owner
    await repos.projects.put(loaded.model_copy(update={"member_ids": set()}))
    assert (await repos.projects.get(project.id)).member_ids == {owner.id}


@pytest.mark.asyncio
async def test_project_with_unknown_member_rejected(repos):
    owner, _, project = await seed_project(repos)
    with pytest.raises(DomainError) as exc:
        await repos.projects.put(project.model_copy(update={"member_ids": {owner.id, "ghost"}}))
    assert exc.value.kind == ErrorKind.CONSTRAINT_VIOLATION


@pytest.mark.asyncio
async def test_task_requires_existing_project(repos):
    owner, _, _ = await seed_project(repos)
    with pytest.raises(DomainError) as exc:
        await repos.tasks.put(Task(title="Orphan", project_id="nope", creator_id=owner.id))
    assert exc.value.kind == ErrorKind.CONSTRAINT_VIOLATION


@pytest.mark.asyncio
async def test_task_round_trip_keeps_tags_and_enums(repos):
    owner, dev, project = await seed_project(repos)
    task = await repos.tasks.put(Task(
        title="Ship it", project_id=project.id, creator_id=owner.id, assignee_id=dev.id,
        tags={"release", "backend"}, estimated_hours=3.5,
    ))
    loaded = await repos.tasks.get(task.id)
    assert loaded.tags == {"release", "backend"}
    assert loaded.status == TaskStatus.TODO
    assert loaded.estimated_hours == 3.5


@pytest.mark.asyncio
async def test_list_by_project_filters(repos):
    owner, dev, project = await seed_project(repos)
    await repos.tasks.put(Task(title="Fix login bug", project_id=project.id, creator_id=owner.id,
                               assignee_id=dev.id, tags={"bug"}))
    await repos.tasks.put(Task(title="Write release notes", project_id=project.id,
                               creator_id=owner.id, status=TaskStatus.IN_PROGRESS))

    assert len(await repos.tasks.list_by_project(project.id)) == 2
    by_tag = await repos.tasks.list_by_project(project.id, TaskFilter(tag="bug"))
    assert [t.title for t in by_tag] == ["Fix login bug"]
    by_status = await repos.tasks.list_by_project(project.id, TaskFilter(status=TaskStatus.IN_PROGRESS))
    assert [t.title for t in by_status] == ["Write release notes"]
    by_search = await repos.tasks.list_by_project(project.id, TaskFilter(search="LOGIN"))
    assert [t.title for t in by_search] == ["Fix login bug"]
    by_assignee = await repos.tasks.list_by_project(project.id, TaskFilter(assignee_id=dev.id))
    assert len(by_assignee) == 1


@pytest.mark.asyncio
async def test_clear_assignee(repos):
    owner, dev, project = await seed_project(repos)
    for title in ("One", "Two"):
        await repos.tasks.put(Task(title=title, project_id=project.id, creator_id=owner.id,
                                   assignee_id=dev.id))
    assert await repos.tasks.clear_assignee(project.id, dev.id) == 2
    tasks = await repos.tasks.list_by_project(project.id)
    assert all(t.assignee_id is None for t in tasks)


@pytest.mark.asyncio
async def test_dependencies_and_comments_cleanup(repos):
    owner, _, project = await seed_project(repos)
    a = await repos.tasks.put(Task(title="A", project_id=project.id, creator_id=owner.id))
    b = await repos.tasks.put(Task(title="B", project_id=project.id, creator_id=owner.id))
    c = await repos.tasks.put(Task(title="C", project_id=project.id, creator_id=owner.id))
    await repos.dependencies.add(Dependency(task_id=b.id, depends_on_id=a.id))
    await repos.dependencies.add(Dependency(task_id=a.id, depends_on_id=c.id))
    await repos.comments.put(Comment(task_id=a.id, author_id=owner.id, content="first"))

    with pytest.raises(DomainError) as exc:
        await repos.dependencies.add(Dependency(task_id=b.id, depends_on_id=a.id))
    assert exc.value.kind == ErrorKind.CONSTRAINT_VIOLATION

    assert len(await repos.dependencies.list_for_project(project.id)) == 2
    assert await repos.dependencies.delete_for_task(a.id) == 2
    assert await repos.comments.delete_for_task(a.id) == 1
    assert await repos.dependencies.list_for_project(project.id) == []


@pytest.mark.asyncio
async def test_comments_are_append_only(repos):
    owner, _, project = await seed_project(repos)
    task = await repos.tasks.put(Task(title="A", project_id=project.id, creator_id=owner.id))
    comment = await repos.comments.put(Comment(task_id=task.id, author_id=owner.id, content="hi"))
    with pytest.raises(DomainError) as exc:
        await repos.comments.put(comment.model_copy(update={"content": "edited"}))
    assert exc.value.kind == ErrorKind.CONSTRAINT_VIOLATION


@pytest.mark.asyncio
async def test_delete(repos):
    owner, _, project = await seed_project(repos)
    task = await repos.tasks.put(Task(title="A", project_id=project.id, creator_id=owner.id))
    await repos.tasks.delete(task.id)
    assert await repos.tasks.find(task.id) is None
    with pytest.raises(DomainError):
        await repos.tasks.delete(task.id)

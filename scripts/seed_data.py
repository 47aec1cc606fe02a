"""
Data Seeder for CyberTask.
Populates the database with a demo workspace through the domain service, so
every invariant (membership, acyclic dependencies, lifecycle) is respected.
"""

import asyncio
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cybertask.domain.errors import DomainError
from cybertask.domain.models import TaskPriority, TaskStatus
from cybertask.infra.config import get_settings
from cybertask.infra.db import DatabaseEngine, init_db
from cybertask.logging_setup import setup_logging
from cybertask.services.task_service import TaskService

logger = logging.getLogger("cybertask.seed")

USERS = [
    ("ada@cybertask.dev", "Ada Lovelace"),
    ("grace@cybertask.dev", "Grace Hopper"),
    ("linus@cybertask.dev", "Linus Torvalds"),
]


async def seed():
    settings = get_settings()
    engine = await init_db(settings.get_db_url())
    service = TaskService(engine.session_factory)

    users = []
    for email, name in USERS:
        try:
            users.append(await service.create_user({"email": email, "display_name": name}))
        except DomainError as e:
            logger.warning(f"Skipping user {email}: {e.message}")
    if len(users) < len(USERS):
        logger.error("Database already seeded; remove it first to reseed")
        await DatabaseEngine.reset_instance()
        return

    owner, dev, reviewer = users
    project = await service.create_project({
        "name": "Website Relaunch",
        "description": "Demo project created by the seeder",
        "owner_id": owner.id,
    })
    for user in (dev, reviewer):
        await service.add_member(project.id, user.id, actor_id=owner.id)

    now = datetime.now()
    design = await service.create_task({
        "title": "Design mockups", "project_id": project.id, "creator_id": owner.id,
        "assignee_id": dev.id, "priority": TaskPriority.HIGH, "tags": {"design"},
        "due_date": now + timedelta(days=3), "estimated_hours": 8,
    })
    build = await service.create_task({
        "title": "Build landing page", "project_id": project.id, "creator_id": owner.id,
        "assignee_id": dev.id, "tags": {"frontend"}, "due_date": now + timedelta(days=7),
        "estimated_hours": 16,
    })
    review = await service.create_task({
        "title": "Accessibility review", "project_id": project.id, "creator_id": owner.id,
        "assignee_id": reviewer.id, "priority": TaskPriority.URGENT, "tags": {"qa"},
    })

    await service.add_dependency(build.id, design.id, actor_id=owner.id)
    await service.add_dependency(review.id, build.id, actor_id=owner.id)

    await service.update_task(design.id, {"status": TaskStatus.IN_PROGRESS}, actor_id=dev.id)
    await service.add_comment(design.id, reviewer.id, "Please keep the contrast ratio above 4.5:1")

    stats = await service.get_project_stats(project.id)
    logger.info(f"Seeded project {project.name}: {stats.total} tasks, by status {stats.by_status}")
    await DatabaseEngine.reset_instance()


if __name__ == "__main__":
    setup_logging("INFO")
    asyncio.run(seed())

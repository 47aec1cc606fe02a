"""Infrastructure layer - Database, persistence and configuration"""

from .db import DatabaseEngine, get_engine, init_db
from .repository import Repositories

__all__ = ["DatabaseEngine", "get_engine", "init_db", "Repositories"]

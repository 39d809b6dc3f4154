"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
project repository port.
"""

from .session import get_async_engine, get_session_factory
from .models import Base, Project
from .projects import (
    ProjectRecord,
    ProjectRepository,
    InMemoryProjectRepository,
    SqlProjectRepository,
)

__all__ = [
    "get_async_engine",
    "get_session_factory",
    "Base",
    "Project",
    "ProjectRecord",
    "ProjectRepository",
    "InMemoryProjectRepository",
    "SqlProjectRepository",
]

"""
SQLAlchemy Models

Defines the database schema for persisted mind-map projects.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, List

from sqlalchemy import (
    JSON,
    String,
    Integer,
    Text,
    DateTime,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _new_project_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------
# Project Model
# ---------------------------------------------------------------------

class Project(Base):
    """
    A mind-map project owned by a user.

    `pages` holds the serialized page list (camelCase keys) exactly as it is
    exported, so stored records and JSON exports share one format.
    """
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=_new_project_id,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    pages: Mapped[List[Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )
    active_page_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_modified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_project_owner_modified", "user_id", "last_modified"),
    )

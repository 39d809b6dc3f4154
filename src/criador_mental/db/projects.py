"""
Project Repository

The persistence port for mind-map projects and its two implementations.

Every operation is scoped by owner id: a project that belongs to another
user behaves exactly like a missing one. Listing returns the owner's
projects sorted by `last_modified`, most recent first.

- `SqlProjectRepository` stores projects through SQLAlchemy (PostgreSQL in
  production). It opens one session per operation, so it can be used from
  background autosave tasks as well as from requests.
- `InMemoryProjectRepository` keeps projects in process memory. It is used
  when no database is configured and in tests.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Project
from ..document.models import Snapshot


# ---------------------------------------------------------------------
# Record & Port
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectRecord:
    """A persisted project as seen by the application."""

    id: str
    owner_id: str
    name: str
    snapshot: Snapshot
    created_at: datetime
    last_modified: datetime


class ProjectRepository(Protocol):
    async def create(self, owner_id: str, name: str, snapshot: Snapshot) -> ProjectRecord:
        ...

    async def get(self, owner_id: str, project_id: str) -> Optional[ProjectRecord]:
        ...

    async def update(self, owner_id: str, project_id: str, snapshot: Snapshot) -> Optional[ProjectRecord]:
        """Replace pages and active page index; None if the project is gone."""
        ...

    async def delete(self, owner_id: str, project_id: str) -> bool:
        ...

    async def list_by_owner(self, owner_id: str) -> List[ProjectRecord]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------

class InMemoryProjectRepository:
    """
    Process-local project store.

    Records are immutable, so returning them directly cannot leak internal
    state to callers.
    """

    def __init__(self) -> None:
        self._projects: Dict[str, ProjectRecord] = {}
        self._lock = RLock()

    async def create(self, owner_id: str, name: str, snapshot: Snapshot) -> ProjectRecord:
        now = _utcnow()
        record = ProjectRecord(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            snapshot=snapshot,
            created_at=now,
            last_modified=now,
        )
        with self._lock:
            self._projects[record.id] = record
        return record

    async def get(self, owner_id: str, project_id: str) -> Optional[ProjectRecord]:
        with self._lock:
            record = self._projects.get(project_id)
        if record is None or record.owner_id != owner_id:
            return None
        return record

    async def update(self, owner_id: str, project_id: str, snapshot: Snapshot) -> Optional[ProjectRecord]:
        with self._lock:
            record = self._projects.get(project_id)
            if record is None or record.owner_id != owner_id:
                return None
            updated = replace(record, snapshot=snapshot, last_modified=_utcnow())
            self._projects[project_id] = updated
            return updated

    async def delete(self, owner_id: str, project_id: str) -> bool:
        with self._lock:
            record = self._projects.get(project_id)
            if record is None or record.owner_id != owner_id:
                return False
            del self._projects[project_id]
            return True

    async def list_by_owner(self, owner_id: str) -> List[ProjectRecord]:
        with self._lock:
            owned = [r for r in self._projects.values() if r.owner_id == owner_id]
        return sorted(owned, key=lambda r: r.last_modified, reverse=True)

    def clear_all(self) -> None:
        with self._lock:
            self._projects.clear()


# ---------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------

def _to_record(row: Project) -> ProjectRecord:
    return ProjectRecord(
        id=row.id,
        owner_id=row.user_id,
        name=row.name,
        snapshot=Snapshot.from_record(row.pages, row.active_page_index),
        created_at=row.created_at,
        last_modified=row.last_modified,
    )


class SqlProjectRepository:
    """
    Database-backed project store.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory used to open one session (and transaction) per operation.
        """
        self._session_factory = session_factory

    async def create(self, owner_id: str, name: str, snapshot: Snapshot) -> ProjectRecord:
        now = _utcnow()
        row = Project(
            user_id=owner_id,
            name=name,
            pages=snapshot.pages_payload(),
            active_page_index=snapshot.active_page_index,
            created_at=now,
            last_modified=now,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return _to_record(row)

    async def get(self, owner_id: str, project_id: str) -> Optional[ProjectRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project).where(
                    Project.id == project_id,
                    Project.user_id == owner_id,
                )
            )
            row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def update(self, owner_id: str, project_id: str, snapshot: Snapshot) -> Optional[ProjectRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project).where(
                    Project.id == project_id,
                    Project.user_id == owner_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None

            row.pages = snapshot.pages_payload()
            row.active_page_index = snapshot.active_page_index
            row.last_modified = _utcnow()
            await session.commit()
        return _to_record(row)

    async def delete(self, owner_id: str, project_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Project).where(
                    Project.id == project_id,
                    Project.user_id == owner_id,
                )
            )
            await session.commit()
        return result.rowcount > 0

    async def list_by_owner(self, owner_id: str) -> List[ProjectRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project)
                .where(Project.user_id == owner_id)
                .order_by(Project.last_modified.desc())
            )
            rows = result.scalars().all()
        return [_to_record(row) for row in rows]

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from ..auth.models import UserContext
from ..auth.security import require_user
from ..config import settings
from ..db.projects import InMemoryProjectRepository, ProjectRepository, SqlProjectRepository
from ..db.session import get_session_factory
from ..editor.orchestrator import GenerationOrchestrator
from ..llm.client import GeminiClient
from ..sessions.application import ApplicationSession
from ..sessions.store import session_store
from ..storage.blobs import LocalBlobStore


@lru_cache
def get_llm_client() -> GeminiClient:
    return GeminiClient()


@lru_cache
def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore()


@lru_cache
def get_project_repository() -> ProjectRepository:
    # Without a database, projects live in process memory
    if not settings.database_url:
        return InMemoryProjectRepository()
    return SqlProjectRepository(get_session_factory())


def get_orchestrator(
    llm: Annotated[GeminiClient, Depends(get_llm_client)],
    blobs: Annotated[LocalBlobStore, Depends(get_blob_store)],
) -> GenerationOrchestrator:
    return GenerationOrchestrator(llm, blobs)


def get_app_session(
    user: Annotated[UserContext, Depends(require_user)],
) -> ApplicationSession:
    """
    The caller's application session, created (and resolved) on first use.
    """
    session = session_store.get_or_create(user.user_id)
    if session.state.status in ("loading", "auth"):
        session.resolve(user)
    return session

"""
Application Session

Per-user owner of the application state, the open editor session and the
brainstorming chat history.

Screen changes go through the pure `transition` function; the side effects
that accompany them (closing the previous editor, flushing autosave,
clearing chat) happen here, around the transition.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from .app_state import (
    AppEvent,
    AppState,
    EditorExited,
    LoggedOut,
    ProjectDeleted,
    ProjectOpened,
    SessionResolved,
    transition,
)
from ..auth.models import UserContext
from ..config import settings
from ..core.errors import (
    BackendError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationFailure,
    parse_error_message,
)
from ..db.projects import ProjectRecord, ProjectRepository
from ..editor.session import EditorSession
from ..llm.client import ChatTurn

logger = logging.getLogger("criador.sessions")

CHAT_FAILURE_MESSAGE = "Desculpe, ocorreu um erro."


class ChatBackend(Protocol):
    async def chat(self, history: List[ChatTurn]) -> str:
        ...


class ApplicationSession:
    """
    Everything the service remembers about one signed-in user.

    Must be driven from the event loop; editor sessions own asyncio timers.
    """

    def __init__(self, user_id: str, chat_history_limit: Optional[int] = None) -> None:
        self.user_id = user_id
        self.state = AppState()
        self.editor: Optional[EditorSession] = None
        self._chat: List[ChatTurn] = []
        self._chat_limit = settings.chat_history_limit if chat_history_limit is None else chat_history_limit

    def _dispatch(self, event: AppEvent) -> AppState:
        previous = self.state
        self.state = transition(previous, event)
        if self.state != previous:
            logger.info(
                "User %s: %s -> %s (%s)",
                self.user_id,
                previous.status,
                self.state.status,
                event.kind,
            )
        return self.state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def resolve(self, user: Optional[UserContext]) -> AppState:
        """Apply the outcome of identity resolution."""
        return self._dispatch(SessionResolved(user))

    async def open_project(
        self,
        project_id: str,
        repository: ProjectRepository,
        autosave_delay: Optional[float] = None,
    ) -> EditorSession:
        """
        Load a project and open it in a fresh editor session.

        A previously open project is flushed and closed first, so reopening
        the same project reads back its latest saved state.

        Raises
        ------
        ConflictError
            If the user is not on the dashboard or in the editor.
        NotFoundError
            If the user owns no such project.
        """
        if self.state.status not in ("dashboard", "editor"):
            raise ConflictError("Sign in before opening a project.")

        if self.editor is not None:
            await self.editor.close()
            self.editor = None

        project: Optional[ProjectRecord] = await repository.get(self.user_id, project_id)
        if project is None:
            if self.state.status == "editor":
                self._dispatch(EditorExited())
            raise NotFoundError(f"Project {project_id} not found.")

        self.editor = EditorSession(project, repository, autosave_delay=autosave_delay)
        self._dispatch(ProjectOpened(project.id))
        return self.editor

    async def exit_editor(self) -> AppState:
        """Flush pending changes and return to the dashboard."""
        if self.editor is not None:
            await self.editor.close()
            self.editor = None
        return self._dispatch(EditorExited())

    async def delete_project(self, project_id: str, repository: ProjectRepository) -> AppState:
        """
        Delete a project of this user.

        Autosave of an open copy is paused while the row is deleted and
        resumed if the delete fails, so unsaved edits survive the failure.

        Raises
        ------
        NotFoundError
            If the user owns no such project.
        PersistenceError
            If the repository failed.
        """
        editor = self.editor if self.editor is not None and self.editor.project_id == project_id else None
        if editor is not None:
            editor.autosave.deactivate()

        try:
            deleted = await repository.delete(self.user_id, project_id)
        except Exception as exc:
            logger.exception("Could not delete project %s", project_id)
            if editor is not None:
                editor.autosave.resume()
            raise PersistenceError("Could not delete the project. Please try again.") from exc

        if not deleted:
            if editor is not None:
                editor.autosave.resume()
            raise NotFoundError(f"Project {project_id} not found.")
        return self.project_deleted(project_id)

    def project_deleted(self, project_id: str) -> AppState:
        """Drop the editor session of a deleted project without saving it."""
        if self.editor is not None and self.editor.project_id == project_id:
            self.editor.discard()
            self.editor = None
        return self._dispatch(ProjectDeleted(project_id))

    async def logout(self) -> AppState:
        """Flush pending changes, forget the chat and return to sign-in."""
        try:
            if self.editor is not None:
                await self.editor.close()
        finally:
            self.editor = None
            self._chat.clear()
        return self._dispatch(LoggedOut())

    def require_editor(self, project_id: Optional[str] = None) -> EditorSession:
        """
        Return the open editor session.

        Raises
        ------
        ConflictError
            If no project (or not `project_id`) is open.
        """
        editor = self.editor
        if editor is None or self.state.status != "editor":
            raise ConflictError("No project is open.")
        if project_id is not None and editor.project_id != project_id:
            raise ConflictError(f"Project {project_id} is not the open project.")
        return editor

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    @property
    def chat_history(self) -> List[ChatTurn]:
        return list(self._chat)

    def _append_chat(self, turn: ChatTurn) -> None:
        self._chat.append(turn)
        if self._chat_limit > 0:
            excess = len(self._chat) - self._chat_limit
            if excess > 0:
                del self._chat[:excess]
                # A conversation sent to the model must open with a user turn
                while self._chat and self._chat[0].role != "user":
                    del self._chat[0]

    async def send_chat_message(self, backend: ChatBackend, text: str) -> List[ChatTurn]:
        """
        Append a user message, ask the chat model, append its reply.

        On failure an apology turn is appended and BackendError is raised.
        """
        text = text.strip()
        if not text:
            raise ValidationFailure("Message cannot be empty.")

        self._append_chat(ChatTurn(role="user", text=text))
        try:
            reply = await backend.chat(self.chat_history)
        except Exception as exc:
            logger.warning("Chat failed for user %s: %s", self.user_id, exc)
            self._append_chat(ChatTurn(role="model", text=CHAT_FAILURE_MESSAGE))
            raise BackendError(parse_error_message(exc)) from exc

        self._append_chat(ChatTurn(role="model", text=reply))
        return self.chat_history

"""
Application State Machine

Top-level lifecycle of a user's session: which screen the client is on,
who is signed in, and which project is open.

Events form a closed set consumed by one pure function, `transition`.
An event that is not valid in the current status leaves the state unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal, Optional, Union

from ..auth.models import UserContext

AppStatus = Literal["loading", "auth", "dashboard", "editor"]


@dataclass(frozen=True)
class AppState:
    status: AppStatus = "loading"
    user: Optional[UserContext] = None
    active_project_id: Optional[str] = None


# ---------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class SessionResolved:
    user: Optional[UserContext]
    kind: Literal["session_resolved"] = field(default="session_resolved", init=False)


@dataclass(frozen=True)
class ProjectOpened:
    project_id: str
    kind: Literal["project_opened"] = field(default="project_opened", init=False)


@dataclass(frozen=True)
class EditorExited:
    kind: Literal["editor_exited"] = field(default="editor_exited", init=False)


@dataclass(frozen=True)
class ProjectDeleted:
    project_id: str
    kind: Literal["project_deleted"] = field(default="project_deleted", init=False)


@dataclass(frozen=True)
class LoggedOut:
    kind: Literal["logged_out"] = field(default="logged_out", init=False)


AppEvent = Union[SessionResolved, ProjectOpened, EditorExited, ProjectDeleted, LoggedOut]


# ---------------------------------------------------------------------
# Transition Function
# ---------------------------------------------------------------------

def transition(state: AppState, event: AppEvent) -> AppState:
    """Return the state after `event`; invalid events return `state`."""
    if isinstance(event, SessionResolved):
        if state.status not in ("loading", "auth"):
            return state
        if event.user is None:
            return AppState(status="auth")
        return AppState(status="dashboard", user=event.user)

    if isinstance(event, ProjectOpened):
        if state.status not in ("dashboard", "editor"):
            return state
        return replace(state, status="editor", active_project_id=event.project_id)

    if isinstance(event, EditorExited):
        if state.status != "editor":
            return state
        return replace(state, status="dashboard", active_project_id=None)

    if isinstance(event, ProjectDeleted):
        if state.status != "editor" or state.active_project_id != event.project_id:
            return state
        return replace(state, status="dashboard", active_project_id=None)

    if isinstance(event, LoggedOut):
        return AppState(status="auth")

    raise TypeError(f"Unknown application event: {type(event).__name__}")
